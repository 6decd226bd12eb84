"""FastAPI server: signed inbound deliveries, live event stream, thread, knowledge and contact APIs."""

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from src.agents.enrichment import EnrichmentEngine
from src.config import (
    DEDUP_DELIVERY_TTL_SECONDS,
    DEDUP_STORE_PATH,
    RESEND_API_KEY,
    SSE_CLIENT_QUEUE_MAX,
    SSE_PING_INTERVAL_SECONDS,
    WEBHOOK_SECRET,
    WEBHOOK_TOLERANCE_SECONDS,
)
from src.db import init_db
from src.ingest.pipeline import IngestionPipeline
from src.mail_provider.protocol import MailProvider
from src.notify.broadcaster import Broadcaster
from src.notify.sse import SSE_HEADERS, event_stream
from src.utils.logger import bind_context, get_logger, unbind_context
from src.utils.tracing import get_tracer, init_tracing, shutdown_tracing
from src.webhook.contact_routes import router as contact_router
from src.webhook.dedup_store import DedupStore
from src.webhook.knowledge_routes import router as knowledge_router
from src.webhook.models import InboundEvent
from src.webhook.signature import SignatureVerificationError, verify_signature
from src.webhook.thread_routes import router as thread_router

logger = get_logger("inbox_ingest.webhook.server")


def _setup_provider(app: FastAPI) -> None:
    """Create the Resend provider in the server's event loop when none was injected."""
    if app.state.provider is not None:
        return
    if not RESEND_API_KEY:
        logger.warning("webhook.lifespan.no_provider_credentials")
        return
    from src.mail_provider.resend import ResendProvider

    app.state.provider = ResendProvider()
    app.state.pipeline.provider = app.state.provider
    app.state._owns_provider = True
    logger.info("webhook.lifespan.provider_created", provider="resend")


async def _shutdown_tasks(app: FastAPI) -> None:
    """Close streams, wait briefly for in-flight enrichment, close the provider client."""
    shutdown_timeout = 10.0
    app.state.broadcaster.close_all()

    tasks = list(app.state.background_tasks)
    if tasks:
        done, pending = await asyncio.wait(tasks, timeout=shutdown_timeout)
        for t in pending:
            t.cancel()
        if pending:
            logger.warning(
                "webhook.lifespan.shutdown_timeout",
                timeout=shutdown_timeout,
                pending=len(pending),
            )

    if getattr(app.state, "_owns_provider", False):
        try:
            await app.state.provider.aclose()
        except Exception as e:
            logger.debug("webhook.lifespan.provider_close_error", error=str(e))
        app.state.provider = None


@asynccontextmanager
async def _lifespan(app: FastAPI):
    init_db()
    init_tracing()
    _setup_provider(app)
    logger.info(
        "webhook.lifespan.started",
        has_provider=app.state.provider is not None,
        enrichment=app.state.pipeline.enrichment is not None,
    )

    yield

    await _shutdown_tasks(app)
    shutdown_tracing()


def create_app(
    provider: MailProvider | None = None,
    broadcaster: Broadcaster | None = None,
    enrichment: EnrichmentEngine | None = None,
    secret: str | None = None,
    dedup_store: DedupStore | None = None,
    enrich: bool = True,
    ping_interval: float = SSE_PING_INTERVAL_SECONDS,
) -> FastAPI:
    """
    Create the FastAPI app. Anything not injected is built from config; the
    Resend provider is created in the lifespan so its HTTP client lives on the
    server's event loop. enrich=False disables post-ingest enrichment.
    """
    app = FastAPI(
        title="Inbox Ingest",
        version="0.1.0",
        lifespan=_lifespan,
    )
    broadcaster = broadcaster or Broadcaster(queue_max=SSE_CLIENT_QUEUE_MAX)
    if enrichment is None and enrich:
        enrichment = EnrichmentEngine(broadcaster=broadcaster)
    app.state.provider = provider
    app.state._owns_provider = False
    app.state.broadcaster = broadcaster
    app.state.background_tasks = set()
    app.state.dedup_store = dedup_store or DedupStore(
        store_path=DEDUP_STORE_PATH,
        delivery_ttl_seconds=DEDUP_DELIVERY_TTL_SECONDS,
    )
    app.state.pipeline = IngestionPipeline(
        provider=provider,
        broadcaster=broadcaster,
        enrichment=enrichment if enrich else None,
        background_tasks=app.state.background_tasks,
    )
    app.state.webhook_secret = WEBHOOK_SECRET if secret is None else secret
    app.state.ping_interval = ping_interval

    app.include_router(thread_router)
    app.include_router(knowledge_router)
    app.include_router(contact_router)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "clients": app.state.broadcaster.client_count,
            "background_tasks": len(app.state.background_tasks),
            "seen_deliveries": app.state.dedup_store.seen_count,
            "in_flight": app.state.dedup_store.processing_count,
        }

    async def _process_delivery(body: bytes, dedup: DedupStore) -> dict[str, Any]:
        """Validate and ingest one verified delivery. Raises HTTPException for 4xx/5xx outcomes."""
        try:
            event = InboundEvent.model_validate(json.loads(body))
            data = event.email_data() if event.is_email_received else None
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
            logger.warning("webhook.inbound.malformed", error=str(e))
            raise HTTPException(status_code=400, detail="Malformed webhook payload")

        # Messages without a Message-ID are keyed by the provider email id
        processing_key = (data.message_id or data.email_id) if data is not None else None
        if processing_key and not await dedup.add_processing(processing_key):
            logger.info("webhook.inbound.message_in_flight", key=processing_key)
            return {"received": True, "duplicate": True}
        try:
            result = await app.state.pipeline.ingest(event, data=data)
        except ValidationError as e:
            logger.warning("webhook.inbound.invalid_email", event_type=event.type, error=str(e))
            raise HTTPException(status_code=400, detail="Invalid email payload")
        except Exception as e:
            logger.exception("webhook.inbound.ingest_error", event_type=event.type, error=str(e))
            raise HTTPException(status_code=500, detail="Ingestion failed")
        finally:
            if processing_key:
                await dedup.remove_processing(processing_key)
        return result.to_response()

    @app.post("/webhooks/inbound")
    async def inbound(request: Request) -> dict[str, Any]:
        body = await request.body()
        tracer = get_tracer()
        with tracer.start_as_current_span("verify"):
            try:
                delivery_id = verify_signature(
                    body,
                    request.headers,
                    app.state.webhook_secret,
                    tolerance=WEBHOOK_TOLERANCE_SECONDS,
                )
            except SignatureVerificationError as e:
                logger.warning("webhook.inbound.rejected", reason=str(e))
                raise HTTPException(status_code=401, detail="Invalid webhook signature")

        dedup: DedupStore = app.state.dedup_store
        bind_context(delivery_id=delivery_id)
        try:
            if not await dedup.mark_seen(delivery_id):
                logger.info("webhook.inbound.replayed_delivery")
                return {"received": True, "duplicate": True}
            try:
                return await _process_delivery(body, dedup)
            except Exception:
                # Any failure after mark_seen releases the delivery id for a retry
                await dedup.forget(delivery_id)
                raise
        finally:
            unbind_context("delivery_id")

    @app.get("/events")
    async def events(request: Request) -> StreamingResponse:
        """Server-Sent Events stream of new_email / thread_updated / label_changed / ping."""
        stream = app.state.broadcaster.register()
        logger.info("webhook.events.connected", client_id=stream.id, clients=app.state.broadcaster.client_count)
        return StreamingResponse(
            event_stream(
                app.state.broadcaster,
                ping_interval=app.state.ping_interval,
                is_disconnected=request.is_disconnected,
                stream=stream,
            ),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    return app
