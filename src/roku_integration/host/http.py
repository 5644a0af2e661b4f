"""FastAPI application exposing extension routes, actions and inspector panels."""
from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from roku_integration.ecp.errors import EcpError
from roku_integration.host.base import RouteHandler, RouteRequest
from roku_integration.host.sqlite_host import Host


def route_path(extension: str, path: str) -> str:
    """``/devices/:id/apps`` -> ``/api/extensions/<ext>/devices/{id}/apps``."""
    segments = [
        "{" + seg[1:] + "}" if seg.startswith(":") else seg
        for seg in path.strip("/").split("/")
    ]
    return f"/api/extensions/{extension}/" + "/".join(segments)


def status_for(result: dict[str, Any]) -> int:
    if result.get("success", True):
        return status.HTTP_200_OK
    return int(result.get("status") or status.HTTP_500_INTERNAL_SERVER_ERROR)


async def get_host(request: Request) -> Host:
    return request.app.state.host


# ---------- Request/Response models ----------


class ActionRequest(BaseModel):
    params: dict[str, Any] = {}
    trigger_context: dict[str, Any] = {}


class ActionSummary(BaseModel):
    key: str
    label: str
    meta: dict[str, Any] = {}


# ---------- Host routes ----------

router = APIRouter(prefix="/api", tags=["host"])


@router.get("/health")
async def health(host: Host = Depends(get_host)) -> dict:
    return {
        "status": "ok",
        "extensions": sorted({r.extension for r in host.routes}),
        "polled_devices": host.polling.polled_devices if host.polling else [],
    }


@router.get("/devices")
async def list_devices(host: Host = Depends(get_host)) -> list[dict]:
    return await host.list_registry_devices()


@router.get("/actions", response_model=list[ActionSummary])
async def list_actions(host: Host = Depends(get_host)) -> list[ActionSummary]:
    return [
        ActionSummary(key=spec.key, label=spec.label, meta=spec.meta)
        for spec in host.actions.values()
    ]


@router.post("/actions/{key}")
async def run_action(key: str, body: ActionRequest, host: Host = Depends(get_host)) -> dict:
    spec = host.actions.get(key)
    if spec is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown action: {key}")
    try:
        return await spec.handler(body.params, body.trigger_context)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc).strip("'\""))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except EcpError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))


@router.get("/inspector/{device_type}/{device_id}")
async def inspect_device(device_type: str, device_id: str, host: Host = Depends(get_host)) -> dict:
    panel = host.inspector_panels.get(device_type)
    if panel is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No inspector panel")
    tabs = []
    for tab in panel.tabs:
        entry: dict[str, Any] = {"id": tab.id, "label": tab.label}
        if tab.component:
            entry["component"] = tab.component
        if tab.fetch is not None:
            entry["data"] = await tab.fetch(device_id)
        tabs.append(entry)
    return {"title": panel.title, "deviceType": panel.device_type, "tabs": tabs}


# ---------- Extension routes ----------


def _endpoint(handler: RouteHandler):
    async def endpoint(request: Request) -> JSONResponse:
        body: Any = {}
        if request.method in ("POST", "PUT", "PATCH"):
            raw = await request.body()
            if raw:
                try:
                    body = json.loads(raw)
                except ValueError:
                    return JSONResponse(
                        {"success": False, "error": "Invalid JSON body", "status": 400},
                        status_code=status.HTTP_400_BAD_REQUEST,
                    )
        result = await handler(RouteRequest(
            params=dict(request.path_params),
            query=dict(request.query_params),
            body=body if isinstance(body, dict) else {},
        ))
        return JSONResponse(result, status_code=status_for(result))

    return endpoint


def create_app(host: Host, title: str = "Roku Integration Host", version: str = "0.0.0") -> FastAPI:
    """Create the FastAPI application.

    Extension routes registered on *host* before this call are mounted
    under ``/api/extensions/<extension>``.
    """
    app = FastAPI(title=title, version=version)
    app.state.host = host
    app.include_router(router)

    for spec in host.routes:
        app.add_api_route(
            route_path(spec.extension, spec.path),
            _endpoint(spec.handler),
            methods=[spec.method],
            name=f"{spec.extension}:{spec.method}:{spec.path}",
        )
    return app
