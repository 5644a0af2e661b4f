"""Device identity reconciliation across the local table, registry and entity states."""

from roku_integration.reconcile.recovery import RecoveryScanner
from roku_integration.reconcile.registry_sync import RegistrySynchronizer
from roku_integration.reconcile.resolver import IdentityResolver, MatchTier, match_device
from roku_integration.reconcile.views import merge_device_views

__all__ = [
    "IdentityResolver",
    "MatchTier",
    "RecoveryScanner",
    "RegistrySynchronizer",
    "match_device",
    "merge_device_views",
]
