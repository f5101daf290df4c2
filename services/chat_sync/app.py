"""FastAPI application receiving chat messages from the external integration."""

from __future__ import annotations

import hmac
import time
from typing import Callable

from fastapi import APIRouter, Depends, FastAPI, Request, status
from pydantic import BaseModel, ConfigDict, Field

from repositories import CareStore, build_store
from shared.config.settings import Settings, get_settings
from shared.http.errors import (
    ChatLogUpsertError,
    NameMapLoadError,
    WebhookUnauthorizedError,
    register_exception_handlers,
)
from shared.models import to_camel
from shared.observability.audit import record_audit
from shared.observability.logger import configure_logging
from shared.observability.middleware import (
    CorrelationIdMiddleware,
    RequestTimingMiddleware,
    annotate_request,
)

from .name_map import NameMapCache
from .pipeline import IngestionPipeline, SyncReport, decode_envelope, parse_envelope

SERVICE_NAME = "chat_sync"


class SyncResponse(BaseModel):
    """Body returned by a successful sync call."""

    message: str
    inserted: int = Field(ge=0)
    skipped: int = Field(ge=0)
    skipped_names: list[str] = Field(default_factory=list)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @classmethod
    def from_report(cls, report: SyncReport) -> "SyncResponse":
        return cls(
            message=report.message,
            inserted=report.inserted,
            skipped=report.skipped,
            skipped_names=list(report.skipped_names),
        )


def get_pipeline(request: Request) -> IngestionPipeline:
    """Return the pipeline composed for this application instance."""

    return request.app.state.pipeline


def require_webhook_secret(request: Request) -> None:
    """Reject the call unless it carries the configured shared secret."""

    webhook = request.app.state.settings.webhook
    expected = webhook.secret
    supplied = request.headers.get(webhook.header_name)
    if not expected or supplied is None:
        raise WebhookUnauthorizedError("Unauthorized")
    if not hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8")):
        raise WebhookUnauthorizedError("Unauthorized")


def create_app(
    settings: Settings | None = None,
    *,
    store: CareStore | None = None,
    clock: Callable[[], float] | None = None,
) -> FastAPI:
    """Create the chat sync application.

    ``store`` and ``clock`` override the configured store and the name map's
    monotonic clock; tests use them to run against in-memory fakes.
    """

    resolved_settings = settings or get_settings()
    configure_logging(service_name=SERVICE_NAME, level=resolved_settings.logging.level)

    care_store = store if store is not None else build_store(resolved_settings.database)
    name_map = NameMapCache(
        care_store,
        ttl_seconds=resolved_settings.name_map.ttl_seconds,
        clock=clock or time.monotonic,
    )

    application = FastAPI(title="Chat Sync Service")
    application.state.settings = resolved_settings
    application.state.store = care_store
    application.state.name_map = name_map
    application.state.pipeline = IngestionPipeline(store=care_store, name_map=name_map)

    application.add_middleware(RequestTimingMiddleware)
    application.add_middleware(CorrelationIdMiddleware)
    register_exception_handlers(application)

    router = APIRouter()

    @router.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        """Return a simple health payload for orchestration checks."""

        return {"status": "ok", "service": SERVICE_NAME}

    @router.post(
        "/api/chatwork-sync",
        response_model=SyncResponse,
        status_code=status.HTTP_200_OK,
        dependencies=[Depends(require_webhook_secret)],
        tags=["chat-sync"],
    )
    async def chatwork_sync(
        request: Request,
        pipeline: IngestionPipeline = Depends(get_pipeline),
    ) -> SyncResponse:
        """Ingest a JSON object or array of chat entries."""

        entries = parse_envelope(decode_envelope(await request.body()))
        annotate_request(request, received=len(entries))
        try:
            report = await pipeline.ingest(entries)
        except (NameMapLoadError, ChatLogUpsertError) as exc:
            await record_audit(
                "chat_sync",
                status="failed",
                actor=SERVICE_NAME,
                metadata={"received": len(entries), "error": exc.detail},
            )
            raise

        await record_audit(
            "chat_sync",
            status="success",
            actor=SERVICE_NAME,
            metadata={
                **report.as_log_fields(),
                "skippedNames": list(report.skipped_names),
            },
        )
        annotate_request(request, inserted=report.inserted, skipped=report.skipped)
        return SyncResponse.from_report(report)

    application.include_router(router)
    return application


__all__ = [
    "SERVICE_NAME",
    "SyncResponse",
    "create_app",
    "get_pipeline",
    "require_webhook_secret",
]
