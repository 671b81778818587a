"""HTTP surface: report ingestion and status/forecast queries."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any, Literal

import structlog
from fastapi import BackgroundTasks, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from jamwatch import __version__
from jamwatch.config import settings
from jamwatch.db import SessionFactory, get_db
from jamwatch.domain import Direction, Street, TimeBucket
from jamwatch.errors import RateLimited, ReportValidationError, StorageUnavailable
from jamwatch.ingest.gateway import IncidentResult, IngestionGateway
from jamwatch.ingest.schemas import ChatSubmission, IncidentSubmission, ReportSubmission, VisitSubmission
from jamwatch.limits.policy import ActionKind, ip_identifier
from jamwatch.limits.rate_limit import RateLimiter
from jamwatch.log import configure_logging
from jamwatch.outbound.notifications import NotificationChannel, deliver_pending
from jamwatch.status.aggregate import Aggregator
from jamwatch.status.forecast import ForecastBucket, Forecaster, group_into_ranges
from jamwatch.storage.reports import ReportStore
from jamwatch.timeutil import to_local, utcnow

logger = structlog.get_logger()


def client_ip(request: Request) -> str:
    if settings.trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip.strip()
    return request.client.host if request.client else "unknown"


def _bucket_json(bucket: TimeBucket) -> dict[str, Any]:
    return {"start": bucket.start.isoformat(), "end": bucket.end.isoformat(), "status": bucket.status.value}


def _forecast_json(buckets: list[ForecastBucket], interval_minutes: int) -> dict[str, Any]:
    ranges = group_into_ranges(buckets, timedelta(minutes=interval_minutes))
    return {
        "interval_minutes": interval_minutes,
        "buckets": [{"time": b.time.isoformat(), "status": b.status.value} for b in buckets],
        "ranges": [
            {
                "start": to_local(r.start).strftime("%H:%M"),
                "end": to_local(r.end).strftime("%H:%M"),
                "duration_minutes": r.duration_minutes,
                "status": r.status.value,
            }
            for r in ranges
        ],
    }


def create_app(
    *,
    session_factory: SessionFactory | None = None,
    limiter: RateLimiter | None = None,
    channels: list[NotificationChannel] | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> FastAPI:
    configure_logging()

    session_factory = session_factory or get_db
    limiter = limiter or RateLimiter(session_factory, clock=clock)
    gateway = IngestionGateway(session_factory, limiter, clock=clock)
    store = ReportStore(session_factory)
    aggregator = Aggregator(store, clock=clock)
    forecaster = Forecaster(store, clock=clock)

    app = FastAPI(title="jamwatch", version=__version__)

    def ip_limited(kind: ActionKind) -> Any:
        def dependency(request: Request) -> None:
            ip = client_ip(request)
            # RateLimiter.check fails open when its store is unreachable.
            if not limiter.check(ip_identifier(ip), kind):
                logger.info("IP rate limited", action_kind=kind.value, identifier=ip_identifier(ip))
                raise RateLimited(kind.value, limiter.policy(kind).message)

        return Depends(dependency)

    def deliver_in_background(result: IncidentResult) -> None:
        try:
            deliver_pending(session_factory, ids=[result.notification_id], channels=channels)
        except Exception:
            # The outbox row stays pending for the next dispatch run.
            logger.exception("Background notification delivery failed", notification_id=str(result.notification_id))

    @app.exception_handler(ReportValidationError)
    async def _validation_error_handler(request: Request, exc: ReportValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": "invalid_input", "details": exc.details})

    @app.exception_handler(RequestValidationError)
    async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [
            {"loc": [str(part) for part in error["loc"]], "msg": error["msg"], "type": error["type"]}
            for error in exc.errors()
        ]
        return JSONResponse(status_code=400, content={"error": "invalid_input", "details": details})

    @app.exception_handler(RateLimited)
    async def _rate_limited_handler(request: Request, exc: RateLimited) -> JSONResponse:
        return JSONResponse(status_code=429, content={"error": "rate_limit", "message": exc.message})

    @app.exception_handler(StorageUnavailable)
    async def _storage_handler(request: Request, exc: StorageUnavailable) -> JSONResponse:
        logger.error("Storage unavailable", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=500, content={"error": "storage_unavailable"})

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    @app.post("/api/traffic-reports")
    def submit_traffic_report(payload: ReportSubmission) -> dict[str, bool]:
        gateway.submit(payload)
        return {"success": True}

    @app.post("/api/incident-reports")
    def submit_incident_report(payload: IncidentSubmission, background_tasks: BackgroundTasks) -> dict[str, bool]:
        def notify(result: IncidentResult) -> None:
            background_tasks.add_task(deliver_in_background, result)

        gateway.submit_incident_payload(payload, notify=notify)
        return {"success": True}

    @app.post("/api/visits")
    def record_visit(payload: VisitSubmission) -> dict[str, bool]:
        recorded = gateway.record_visit(payload.user_fingerprint)
        return {"success": True, "recorded": recorded}

    @app.post("/api/chat-messages")
    def submit_chat_message(payload: ChatSubmission, request: Request) -> dict[str, Any]:
        result = gateway.submit_chat_payload(payload, client_ip=client_ip(request))
        return {"success": True, "id": str(result.message_id), "message": result.message}

    @app.post("/api/notifications/dispatch", dependencies=[ip_limited(ActionKind.NOTIFICATION_TRIGGER)])
    def dispatch_notifications() -> dict[str, int]:
        return deliver_pending(session_factory, channels=channels)

    read_limit = [ip_limited(ActionKind.DATA_PROXY_CALL)]

    @app.get("/api/streets/{street}/{direction}/status", dependencies=read_limit)
    def current_status(street: Street, direction: Direction) -> dict[str, Any]:
        current = aggregator.current_status(street, direction)
        return {
            "street": street.value,
            "direction": direction.value,
            "status": current.status.value,
            "window_start": current.window_start.isoformat(),
            "window_end": current.window_end.isoformat(),
        }

    @app.get("/api/streets/{street}/{direction}/timeline/today", dependencies=read_limit)
    def today_timeline(street: Street, direction: Direction) -> dict[str, Any]:
        buckets = aggregator.today_timeline(street, direction)
        return {"street": street.value, "direction": direction.value, "buckets": [_bucket_json(b) for b in buckets]}

    @app.get("/api/streets/{street}/{direction}/timeline/week", dependencies=read_limit)
    def week_timeline(street: Street, direction: Direction) -> dict[str, Any]:
        buckets = aggregator.week_timeline(street, direction)
        return {"street": street.value, "direction": direction.value, "buckets": [_bucket_json(b) for b in buckets]}

    @app.get("/api/streets/{street}/{direction}/timeline/weekly-grid", dependencies=read_limit)
    def weekly_grid(street: Street, direction: Direction) -> dict[str, Any]:
        grid = aggregator.weekly_grid(street, direction)
        return {
            "street": street.value,
            "direction": direction.value,
            "days": [
                {"day": day.day.isoformat(), "blocks": [_bucket_json(b) for b in day.blocks]} for day in grid
            ],
        }

    @app.get("/api/streets/{street}/{direction}/forecast", dependencies=read_limit)
    def forecast(
        street: Street,
        direction: Direction,
        horizon: Literal["short", "extended"] = Query("short"),
    ) -> dict[str, Any]:
        if horizon == "extended":
            buckets = forecaster.extended_forecast(street, direction)
            interval = settings.extended_forecast_interval_minutes
        else:
            buckets = forecaster.short_forecast(street, direction)
            interval = settings.short_forecast_interval_minutes
        return {"street": street.value, "direction": direction.value, "horizon": horizon, **_forecast_json(buckets, interval)}

    @app.get("/api/streets/{street}/{direction}/commute", dependencies=read_limit)
    def commute(
        street: Street,
        direction: Direction,
        hour: int = Query(..., ge=0, le=23),
        minute: int = Query(0, ge=0, le=59),
    ) -> dict[str, Any]:
        by_weekday = forecaster.weekday_comparison(street, direction, hour, minute)
        return {
            "street": street.value,
            "direction": direction.value,
            "time": f"{hour:02d}:{minute:02d}",
            "days": [
                {"weekday": weekday, "date": entry.day.isoformat(), "status": entry.status.value}
                for weekday, entry in sorted(by_weekday.items())
            ],
        }

    @app.get("/api/streets/{street}/incidents", dependencies=read_limit)
    def incidents(street: Street, hours: float = Query(1.0, gt=0, le=24 * 7)) -> dict[str, Any]:
        counts = aggregator.recent_incidents(street, hours=hours)
        return {
            "street": street.value,
            "hours": hours,
            "counts": {incident_type.value: count for incident_type, count in sorted(counts.items())},
        }

    @app.get("/api/streets/{street}/chat", dependencies=read_limit)
    def chat_messages(
        street: Street,
        limit: int = Query(settings.chat_history_limit, ge=1, le=100),
    ) -> dict[str, Any]:
        messages = store.chat_messages(street, limit=limit)
        return {
            "street": street.value,
            "messages": [
                {"id": str(m.id), "message": m.message, "created_at": m.created_at.isoformat()} for m in messages
            ],
        }

    return app
