"""HTTP surface for the response pipeline.

Endpoints:
- GET /health - Liveness
- GET /ready - Readiness
- POST /turn - Assemble the response for one user message
- POST /sessions/{session_id}/reset - Start a new conversation
"""
import logging
import os
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from safeharbor import __version__
from safeharbor.shared.errors import SessionBusyError
from safeharbor.shared.models import MAX_HISTORY_ITEMS, TurnInput
from safeharbor.shared.storage import StorageConfig, create_store
from safeharbor.shared.utils import configure_pii_salt, is_pii_salt_configured, utc_now
from safeharbor.services.audit_service import CrisisAuditLog
from safeharbor.services.crisis_engine import (
    CrisisAlertPublisher,
    CrisisEscalation,
    CrisisNotifier,
    EscalationConfig,
    LocationResolver,
)
from safeharbor.services.memory_service import ConsolidationScheduler, MemoryConfig
from safeharbor.services.safety_service import ClassifierConfig, CrisisClassifier
from .assembler import ResponseAssembler
from .config import PipelineConfig

logger = logging.getLogger(__name__)

DEV_PII_SALT = "default_dev_salt_change_in_production_32chars"


class TurnRequest(BaseModel):
    """Request model for one user message."""
    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(..., min_length=1)
    session_id: str = Field(..., alias="sessionId", min_length=1)
    history: List[str] = Field(default_factory=list)
    user_agent: Optional[str] = Field(None, alias="userAgent")


def build_assembler() -> ResponseAssembler:
    """Wire the pipeline from environment variables.

    Environment variables:
        SAFEHARBOR_PII_SALT: Salt for hashing session ids (min 32 chars)
        plus those read by each config's from_env()
    """
    if not is_pii_salt_configured():
        salt = os.getenv("SAFEHARBOR_PII_SALT")
        if not salt:
            logger.warning("PII_SALT_DEFAULTED", extra={"action": "set SAFEHARBOR_PII_SALT in production"})
            salt = DEV_PII_SALT
        configure_pii_salt(salt)

    store = create_store(StorageConfig.from_env())
    escalation_config = EscalationConfig.from_env()
    notifier = CrisisNotifier(
        publisher=CrisisAlertPublisher(
            stream_name=escalation_config.stream_name,
            enabled=escalation_config.alerts_enabled,
        ),
        audit_log=CrisisAuditLog(store=store),
    )
    escalation = CrisisEscalation(
        config=escalation_config,
        notifier=notifier,
        location_resolver=LocationResolver(timeout_seconds=escalation_config.location_timeout_seconds),
    )
    return ResponseAssembler(
        store=store,
        escalation=escalation,
        classifier=CrisisClassifier(ClassifierConfig.from_env()),
        config=PipelineConfig.from_env(),
        memory_config=MemoryConfig.from_env(),
    )


def create_app(assembler: Optional[ResponseAssembler] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        assembler: Pipeline to serve; built from the environment when omitted
    """
    assembler = assembler or build_assembler()
    scheduler = ConsolidationScheduler(
        assembler.live_banks,
        period_seconds=assembler.services.memory_config.consolidation_period_seconds,
        clock=assembler.clock,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        scheduler.start()
        yield
        await scheduler.stop()
        await assembler.services.escalation.notifier.drain()

    app = FastAPI(
        title="SafeHarbor",
        description="Message-safety and memory pipeline",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.assembler = assembler
    app.state.scheduler = scheduler

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy", "service": "safeharbor", "timestamp": utc_now().isoformat()}

    @app.get("/ready")
    async def ready():
        """Readiness check."""
        if not is_pii_salt_configured():
            raise HTTPException(status_code=503, detail="not_ready")
        return {"status": "ready", "sessions": len(assembler.sessions)}

    @app.post("/turn")
    async def turn(body: TurnRequest, request: Request):
        """Assemble the response for one user message.

        Request Body:
            {"text": "...", "sessionId": "...", "history": ["..."], "userAgent": "..."}

        Response:
            {"text": "...", "crisisFlag": false, "concernType": "...", "metadata": {...}}
        """
        turn_input = TurnInput(
            text=body.text,
            session_id=body.session_id,
            history=list(body.history[-MAX_HISTORY_ITEMS:]),
            user_agent=body.user_agent or request.headers.get("user-agent"),
        )
        try:
            output = await assembler.process_turn(turn_input)
        except SessionBusyError as e:
            raise HTTPException(status_code=409, detail=str(e))
        return output.to_dict()

    @app.post("/sessions/{session_id}/reset")
    async def reset_session(session_id: str):
        """Start a new conversation for a session."""
        try:
            await assembler.reset_session(session_id)
        except SessionBusyError as e:
            raise HTTPException(status_code=409, detail=str(e))
        return {"status": "reset"}

    return app


def run_server(host: str = "0.0.0.0", port: int = 8000):
    """Run the API server."""
    import uvicorn
    app = create_app()
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    run_server(
        host=os.getenv("SAFEHARBOR_HOST", "0.0.0.0"),
        port=int(os.getenv("SAFEHARBOR_PORT", "8000")),
    )
