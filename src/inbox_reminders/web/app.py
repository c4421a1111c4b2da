"""FastAPI control surface for the processing daemon."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Literal
from zoneinfo import ZoneInfo

from fastapi import Depends, FastAPI, HTTPException, Request, status as http_status
from pydantic import BaseModel

from inbox_reminders.bootstrap import build_container
from inbox_reminders.core import AppSettings, ServiceContainer, load_app_settings
from inbox_reminders.core.container import DAEMON, FIELD_EXTRACTOR, RULE_STORE
from inbox_reminders.core.datetime_utils import serialize_datetime
from inbox_reminders.core.interfaces import (
    DaemonStartupError,
    NotRunningError,
    RuleStoreError,
)
from inbox_reminders.core.models import DaemonStats, Rule
from inbox_reminders.daemon import ProcessingDaemon
from inbox_reminders.sample import RulePreview, build_sample_email, preview_sample

from .security import ApiTokenGuard

LOGGER = logging.getLogger(__name__)


class RuleStatusUpdate(BaseModel):
    status: Literal["active", "paused", "disabled"]


class SampleEmailRequest(BaseModel):
    subject: str | None = None
    sender: str | None = None
    body: str | None = None
    provider: Literal["gmail", "icloud"] = "gmail"


def create_app(
    settings: AppSettings | None = None,
    daemon: ProcessingDaemon | None = None,
    *,
    container: ServiceContainer | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    app_settings = settings or load_app_settings()
    services = container or build_container(app_settings)
    if daemon is not None:
        services.register_instance(DAEMON, daemon)
    tz = ZoneInfo(app_settings.reminders.timezone)

    app = FastAPI(title="Inbox Reminders")
    guard = ApiTokenGuard(token=app_settings.web.api_token)
    if not guard.enabled:
        LOGGER.warning("Control API has no token configured; endpoints are unprotected")

    def require_token(request: Request) -> None:
        guard.validate(request)

    protected = [Depends(require_token)]

    def get_daemon() -> ProcessingDaemon:
        return services.resolve(DAEMON)

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        """Stop a running daemon so its state is persisted."""
        running = services.try_resolve(DAEMON)
        if running is not None and running.is_running():
            await running.stop()
            LOGGER.info("Daemon stopped on application shutdown")

    @app.get("/api/status", dependencies=protected)
    async def daemon_status() -> dict[str, Any]:
        """Report lifecycle, counters and effective configuration."""
        current = get_daemon()
        config = current.get_config()
        return {
            "stats": _serialize_stats(current.get_stats()),
            "config": {
                "intervalMinutes": config.interval_minutes,
                "maxEmailsPerScan": config.max_emails_per_scan,
                "retryAttempts": config.retry_attempts,
                "stateFile": str(config.state_file),
            },
        }

    @app.post("/api/daemon/start", dependencies=protected)
    async def start_daemon() -> dict[str, Any]:
        current = get_daemon()
        if current.is_running():
            return {"success": False, "message": "Daemon is already running"}
        try:
            await current.start()
        except DaemonStartupError as exc:
            raise HTTPException(
                status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Failed to start daemon: {exc}",
            ) from exc
        return {"success": True, "stats": _serialize_stats(current.get_stats())}

    @app.post("/api/daemon/stop", dependencies=protected)
    async def stop_daemon() -> dict[str, Any]:
        current = get_daemon()
        if not current.is_running():
            return {"success": False, "message": "Daemon is not running"}
        await current.stop()
        return {"success": True, "stats": _serialize_stats(current.get_stats())}

    @app.post("/api/daemon/process", dependencies=protected)
    async def force_processing() -> dict[str, Any]:
        current = get_daemon()
        try:
            await current.force_processing()
        except NotRunningError as exc:
            raise HTTPException(
                status_code=http_status.HTTP_409_CONFLICT,
                detail="Daemon is not running. Start it first.",
            ) from exc
        return {"success": True, "stats": _serialize_stats(current.get_stats())}

    @app.get("/api/rules", dependencies=protected)
    async def list_rules() -> list[dict[str, Any]]:
        try:
            rules = await asyncio.to_thread(services.resolve(RULE_STORE).load_rules)
        except RuleStoreError as exc:
            raise HTTPException(
                status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)
            ) from exc
        return [_serialize_rule(rule) for rule in rules]

    @app.post("/api/rules/{name}/status", dependencies=protected)
    async def update_rule_status(name: str, update: RuleStatusUpdate) -> dict[str, Any]:
        try:
            await asyncio.to_thread(
                services.resolve(RULE_STORE).update_rule_status, name, update.status
            )
        except RuleStoreError as exc:
            raise HTTPException(
                status_code=http_status.HTTP_404_NOT_FOUND, detail=str(exc)
            ) from exc
        return {"success": True, "name": name, "status": update.status}

    @app.post("/api/sample-email", dependencies=protected)
    async def sample_email(payload: SampleEmailRequest) -> dict[str, Any]:
        """Show what each active rule would do with a sample message."""
        message = build_sample_email(
            subject=payload.subject,
            sender=payload.sender,
            body=payload.body,
            provider=payload.provider,
        )
        rules = await asyncio.to_thread(services.resolve(RULE_STORE).get_active_rules)
        previews = await asyncio.to_thread(
            preview_sample,
            message,
            rules,
            extractor=services.resolve(FIELD_EXTRACTOR),
            tz=tz,
        )
        return {
            "email": {
                "id": message.id,
                "sender": message.sender,
                "subject": message.subject,
                "body": message.body,
            },
            "rules": [_serialize_preview(preview) for preview in previews],
        }

    return app


def _serialize_stats(stats: DaemonStats) -> dict[str, Any]:
    return {
        "status": stats.status.value,
        "uptimeSeconds": round(stats.uptime_seconds, 3),
        "totalEmailsProcessed": stats.total_messages_processed,
        "totalRemindersCreated": stats.total_reminders_created,
        "queueSize": stats.queue_size,
        "lastProcessedTimestamp": serialize_datetime(stats.last_processed_timestamp),
        "isProcessing": stats.is_processing,
        "lastErrorTimestamp": serialize_datetime(stats.last_error_timestamp),
        "lastErrorMessage": stats.last_error_message,
    }


def _serialize_rule(rule: Rule) -> dict[str, Any]:
    template = rule.reminder_template
    return {
        "name": rule.name,
        "status": rule.status,
        "providers": list(rule.providers),
        "criteria": rule.criteria.model_dump(),
        "reminder": {
            "titleTemplate": template.title_template,
            "listName": template.list_name,
            "priority": template.priority,
            "daysBeforeReminder": template.days_before_reminder,
            "timeOfDay": template.time_of_day,
        },
    }


def _serialize_preview(preview: RulePreview) -> dict[str, Any]:
    return {
        "ruleName": preview.rule_name,
        "matched": preview.matched,
        "criteria": preview.criteria,
        "fields": preview.fields,
        "confidence": preview.confidence,
        "method": preview.method,
        "wouldCreateReminder": preview.would_create,
        "title": preview.title,
        "listName": preview.list_name,
        "dueDate": preview.due.isoformat() if preview.due else None,
    }


__all__ = ["create_app"]
