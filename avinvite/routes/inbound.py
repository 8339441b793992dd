from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool

from avinvite.calendar.ics_builder import CalendarBuilder
from avinvite.calendar.normalizer import normalize_events
from avinvite.core.config import load_config
from avinvite.core.errors import ConfigError
from avinvite.llm.service import select_extraction_client
from avinvite.pipeline.service import process_inbound_email
from avinvite.routes.health import update_last_run
from avinvite.schemas.inbound import InboundEmailResponse
from avinvite.services.emailer import select_emailer

router = APIRouter()

CALENDAR_MEDIA_TYPE = "text/calendar; charset=utf-8"


def _require_api_key_if_configured(request: Request, api_key: str | None) -> None:
    if not api_key:
        return
    provided = request.headers.get("x-api-key")
    if provided != api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


@router.post("/email")
async def receive_email(request: Request):
    """Run the calendar pipeline on one raw RFC 822 message."""
    config = load_config()
    _require_api_key_if_configured(request, config.api_key)

    raw = await request.body()
    if not raw:
        raise HTTPException(status_code=400, detail="Empty message body")

    try:
        emailer = select_emailer(config)
    except ConfigError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    extractor = select_extraction_client(config)

    outcome = await run_in_threadpool(process_inbound_email, raw, config, extractor, emailer)
    update_last_run(outcome)

    response = InboundEmailResponse(
        ok=outcome.status in ("sent", "no_events"),
        status=outcome.status,
        event_count=outcome.event_count,
        recipient=outcome.recipient,
        subject=outcome.subject,
        message_id=outcome.message_id,
        driver=emailer.driver,  # type: ignore[arg-type]
        error=outcome.error,
    )
    return JSONResponse(status_code=200, content=response.model_dump())


@router.post("/preview")
async def preview_calendar(request: Request):
    """Render extraction JSON to a calendar document without sending it."""
    config = load_config()
    _require_api_key_if_configured(request, config.api_key)

    raw = (await request.body()).decode("utf-8", errors="replace")
    result = normalize_events(raw)
    if result.status == "parse_error":
        raise HTTPException(status_code=422, detail=result.error)

    try:
        calendar = CalendarBuilder.from_config(config).build(result.events)
    except ConfigError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return Response(
        content=calendar,
        media_type=CALENDAR_MEDIA_TYPE,
        headers={"Content-Disposition": f'inline; filename="{config.attachment_filename}"'},
    )
