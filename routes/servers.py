# ─────────────────────────────────────────────────────────────────
# routes/servers.py — Monitoring API Endpoints
#
# Every route here sits behind require_user: no valid session,
# no access (401). The handlers only translate HTTP to calls on
# the MonitorService and back.
# ─────────────────────────────────────────────────────────────────

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from auth import require_user
from errors import HostNotFoundError
from service import MonitorService

logger = logging.getLogger("routes")


def get_service(request: Request) -> MonitorService:
    return request.app.state.service


router = APIRouter(
    prefix="/api",
    tags=["Servers"],
    dependencies=[Depends(require_user)],
)


# ─────────────────────────────────────────────────────────────────
# GET /api/servers — Current snapshot
# ─────────────────────────────────────────────────────────────────

@router.get("/servers")
def list_servers(service: MonitorService = Depends(get_service)):
    """
    Returns the last completed sweep for every host.
    This does NOT ping anything — use POST /api/sweep for fresh data.
    """

    snapshot = service.current_snapshot()

    return {
        "success": True,
        "servers": {
            name: result.model_dump(mode="json")
            for name, result in snapshot.results.items()
        },
        "timestamp": snapshot.timestamp.isoformat() if snapshot.timestamp else None,
        "sweep_in_progress": service.scheduler.state.value == "running",
    }


# ─────────────────────────────────────────────────────────────────
# POST /api/ping/{server_name} — Ping one host right now
# ─────────────────────────────────────────────────────────────────

@router.post("/ping/{server_name}")
async def ping_server(
    server_name: str,
    service: MonitorService = Depends(get_service),
    user: str = Depends(require_user),
):
    """
    Pings a single configured host outside the sweep schedule.
    The shared snapshot is left alone; the result goes back to the caller only.
    """

    try:
        result = await service.probe_host(server_name)
    except HostNotFoundError:
        raise HTTPException(status_code=404, detail="Server not found")

    logger.info(f"📡 Manual ping of '{server_name}' by {user}: {'online' if result.online else 'offline'}")

    return {
        "success": True,
        "server": server_name,
        "ip": result.address,
        "result": result.model_dump(mode="json"),
    }


# ─────────────────────────────────────────────────────────────────
# POST /api/sweep — Ask for a full sweep now
# ─────────────────────────────────────────────────────────────────

@router.post("/sweep", status_code=202)
async def trigger_sweep(
    service: MonitorService = Depends(get_service),
    user: str = Depends(require_user),
):
    """
    Requests an on-demand sweep. Returns immediately.

    started=false means a sweep was already running and this request
    was folded into it; fresh results still reach every dashboard.
    """

    started = service.request_sweep()
    logger.info(f"Full sweep requested by {user} ({'started' if started else 'coalesced'})")

    return {"success": True, "started": started}


# ─────────────────────────────────────────────────────────────────
# GET /api/status — Scheduler and subscriber counters
# ─────────────────────────────────────────────────────────────────

@router.get("/status")
def monitor_status(service: MonitorService = Depends(get_service)):
    return {"success": True, **service.status()}
