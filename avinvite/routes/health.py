import os
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from avinvite.core.models import PipelineOutcome

router = APIRouter()

# Summary of the most recent pipeline run, replaced wholesale on each update.
_last_run: Optional[Dict[str, Any]] = None


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def update_last_run(outcome: PipelineOutcome) -> None:
    """
    Record the outcome of the latest pipeline run.

    Args:
        outcome: The pipeline outcome to summarise
    """
    global _last_run

    last_run: Dict[str, Any] = {
        "time": _now_iso(),
        "action": outcome.status,
        "driver": outcome.driver or "none",
        "event_count": outcome.event_count,
        "success": outcome.status in ("sent", "no_events"),
    }
    if outcome.message_id is not None:
        last_run["message_id"] = outcome.message_id
    if outcome.duration_ms is not None:
        last_run["duration_ms"] = round(outcome.duration_ms, 2)
    if outcome.error is not None:
        last_run["error"] = outcome.error

    _last_run = last_run


def get_last_run() -> Optional[Dict[str, Any]]:
    """Get the last run information."""
    return _last_run


@router.get("/healthz")
async def health_check() -> JSONResponse:
    """Health check with last run information."""
    response = {
        "status": "ok",
        "timestamp": _now_iso(),
    }

    last_run = get_last_run()
    if last_run:
        response["last_run"] = last_run

    obs_enabled = os.getenv("OBS_ENABLED", "false").lower() == "true"
    response["observability"] = {
        "enabled": obs_enabled,
        "sentry_configured": bool(os.getenv("SENTRY_DSN")),
    }

    return JSONResponse(status_code=200, content=response)


@router.get("/healthz/ready")
async def readiness_check() -> JSONResponse:
    """
    Readiness check for container orchestration.

    Reports not ready when the mail driver, calendar settings or invite
    recipient are unusable.
    """
    from avinvite.calendar.attendees import usable_email
    from avinvite.calendar.datetimes import DateFormatter
    from avinvite.core.config import load_config
    from avinvite.core.errors import ConfigError
    from avinvite.services.emailer import select_emailer

    config = load_config()
    checks = {}
    try:
        select_emailer(config)
        checks["email_service"] = "ok"
    except ConfigError as exc:
        checks["email_service"] = str(exc)
    try:
        DateFormatter(mode=config.date_mode, tzid=config.timezone)
        checks["calendar"] = "ok"
    except ConfigError as exc:
        checks["calendar"] = str(exc)
    if usable_email(config.invite_recipient):
        checks["recipient"] = "ok"
    else:
        checks["recipient"] = f"INVITE_RECIPIENT is not a usable address: {config.invite_recipient!r}"

    all_healthy = all(status == "ok" for status in checks.values())

    response = {
        "status": "ready" if all_healthy else "not_ready",
        "timestamp": _now_iso(),
        "checks": checks,
    }

    status_code = 200 if all_healthy else 503
    return JSONResponse(status_code=status_code, content=response)


@router.get("/healthz/live")
async def liveness_check() -> JSONResponse:
    """Liveness check for container orchestration."""
    return JSONResponse(status_code=200, content={"status": "alive", "timestamp": _now_iso()})
