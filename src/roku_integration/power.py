"""Power-state interpretation for Roku ``power-mode`` readings.

Roku reports ``Ready`` when the panel is dark but the device is fully
powered and listening, and ``PowerOn`` while a screensaver covers the
screen. Both read as "on" if taken literally, so the raw mode is combined
with the foreground app before it reaches entity state or triggers.
"""

from __future__ import annotations

from typing import Any

from roku_integration.models import MediaState, PowerState

_STANDBY_MODES = frozenset({"standby", "displayoff", "display off", "ready"})
_POWER_ON_MODES = frozenset({"poweron", "power on"})
_STANDBY_FRAGMENTS = ("off", "standby", "ready")

HOME_APP_NAME = "Home"


def _app_field(active_app: Any, name: str) -> Any:
    if active_app is None:
        return None
    if isinstance(active_app, dict):
        return active_app.get(name)
    return getattr(active_app, name, None)


def is_screensaver(active_app: Any) -> bool:
    return _app_field(active_app, "type") == "screensaver"


def interpret_power_state(raw_power_mode: str | None, active_app: Any = None) -> PowerState:
    """Map a raw ``power-mode`` and the active app to ``on`` or ``standby``.

    Unrecognised modes resolve to ``on`` so that odd firmware strings never
    raise false offline alarms.
    """
    mode = (raw_power_mode or "").strip().lower()

    if mode in _STANDBY_MODES:
        return PowerState.STANDBY

    # Headless sticks and powered-on TVs are "on" unless a screensaver runs
    if mode == "headless" or mode in _POWER_ON_MODES:
        return PowerState.STANDBY if is_screensaver(active_app) else PowerState.ON

    if any(fragment in mode for fragment in _STANDBY_FRAGMENTS):
        return PowerState.STANDBY

    return PowerState.ON


def media_state(power_state: PowerState, active_app: Any = None) -> MediaState:
    """Main ``media_player`` state derived from power and the foreground app."""
    if power_state in (PowerState.OFF, PowerState.STANDBY):
        return MediaState.OFF
    if is_screensaver(active_app):
        return MediaState.IDLE
    app_name = _app_field(active_app, "name")
    if app_name and app_name != HOME_APP_NAME:
        return MediaState.PLAYING
    return MediaState.ON
