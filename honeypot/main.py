"""
FastAPI Application — Scam-engagement honeypot API.
Main entry point. Accepts scammer turns, returns persona replies, and lets the
controller fire the intelligence report in the background.
"""

import re
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from honeypot.agent import HoneyPotAgent
from honeypot.config import Settings, load_settings
from honeypot.controller import TurnController
from honeypot.errors import AuthError, HoneypotError, RateLimitError
from honeypot.language import detect_language, pick_stall_phrase
from honeypot.models import TurnRequest
from honeypot.rate_limit import SlidingWindowLimiter
from honeypot.reporter import ReportClient
from honeypot.session_store import SessionStore


VERSION = "3.0.0"

logger = logging.getLogger("honeypot")


# ── Log Redaction Utility ──────────────────────────────────────

def redact(text: str) -> str:
    """Redact sensitive data from log output (phone numbers, emails, long digit runs)."""
    text = re.sub(r'\+?\d[\d\s\-]{8,}\d', '[REDACTED_PHONE]', text)
    text = re.sub(r'[\w.+-]+@[\w.-]+\.\w+', '[REDACTED_EMAIL]', text)
    text = re.sub(r'\b\d{10,18}\b', '[REDACTED_DIGITS]', text)
    return text


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


# ── App Factory ────────────────────────────────────────────────

def create_app(
    settings: Optional[Settings] = None,
    agent=None,
    reporter=None,
    store: Optional[SessionStore] = None,
) -> FastAPI:
    settings = settings or load_settings()
    _configure_logging(settings.log_level)

    agent = agent or HoneyPotAgent(settings)
    reporter = reporter or ReportClient(settings.report_url, timeout=settings.report_timeout_seconds)
    controller = TurnController(settings, agent, reporter, store=store)
    limiter = SlidingWindowLimiter(settings.rate_limit_max_requests, settings.rate_limit_window_seconds)

    if not settings.auth_enabled:
        logger.warning("⚠️ HONEYPOT_API_KEY not set. Authentication is disabled.")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        controller.start_background()
        logger.info("🚀 Honeypot online (max_turns=%d)", settings.max_turns)
        yield
        await controller.stop_background()
        logger.info("Honeypot shutting down.")

    app = FastAPI(title="Scam Honeypot API", version=VERSION, lifespan=lifespan)
    app.state.settings = settings
    app.state.controller = controller
    app.state.limiter = limiter

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # operator UI is served from another origin
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Error Handlers ─────────────────────────────────────────

    @app.exception_handler(HoneypotError)
    async def honeypot_error_handler(request: Request, exc: HoneypotError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"status": "error", "message": exc.message},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        logger.info("Malformed request body: %d errors", len(exc.errors()))
        return JSONResponse(
            status_code=400,
            content={"status": "error", "message": "Malformed request body"},
        )

    # ── Dependencies ───────────────────────────────────────────

    def require_api_key(x_api_key: Optional[str] = Header(None, alias="x-api-key")) -> None:
        if settings.auth_enabled and x_api_key != settings.api_key:
            raise AuthError("Unauthorized: invalid API key")

    def check_rate_limit(request: Request) -> None:
        ip = _client_ip(request)
        if not limiter.allow(ip):
            logger.warning("🚫 Rate limited: %s", ip)
            raise RateLimitError("Too many requests")

    guarded = [Depends(require_api_key), Depends(check_rate_limit)]

    # ── Health Check ───────────────────────────────────────────

    @app.get("/")
    @app.get("/health")
    async def health():
        return {
            "status": "Honeypot Active",
            "version": VERSION,
            "llmConfigured": settings.llm_enabled,
            "authConfigured": settings.auth_enabled,
            "activeSessions": await controller.store.count(),
            "reportWorkerRunning": controller.jobs.running,
        }

    # ── Turn Endpoints ─────────────────────────────────────────

    async def _handle_turn(incoming: TurnRequest):
        message_text = incoming.message_text()
        logger.info("📥 Session: %s, msg: %s", incoming.sessionId or "unknown", redact(message_text[:80]))

        try:
            result = await controller.handle_turn(
                incoming.sessionId, message_text, incoming.conversationHistory,
            )
        except HoneypotError:
            raise
        except Exception:
            logger.exception("Unexpected error in turn handling")
            language = detect_language(message_text)
            return {"status": "success", "reply": pick_stall_phrase(language, [])}

        response = {"status": "success", "reply": result.reply}
        if settings.debug:
            session = await controller.store.get(incoming.sessionId.strip())
            if session is not None:
                response["extraction"] = controller.snapshot(session)

        logger.info("📤 Reply length: %d, turn: %d, report_triggered: %s",
                    len(result.reply), result.turn_count, result.report_triggered)
        return response

    @app.post("/honeypot", dependencies=guarded)
    async def honeypot(incoming: TurnRequest):
        return await _handle_turn(incoming)

    @app.post("/", dependencies=guarded)
    async def honeypot_root(incoming: TurnRequest):
        return await _handle_turn(incoming)

    @app.post("/detect", dependencies=guarded)
    async def detect(incoming: TurnRequest):
        return await _handle_turn(incoming)

    # ── Operator Inspection ────────────────────────────────────

    @app.get("/sessions/{session_id}", dependencies=[Depends(require_api_key)])
    async def get_session(session_id: str):
        session = await controller.get_session(session_id)
        return {
            "sessionId": session.session_id,
            "state": session.state.value,
            "turnCount": session.turn_count,
            "totalMessages": session.total_messages,
            "language": session.language,
            "createdAt": session.created_at,
            "lastSeen": session.last_seen,
        }

    @app.get("/sessions/{session_id}/intelligence", dependencies=[Depends(require_api_key)])
    async def get_intelligence(session_id: str):
        return await controller.inspect(session_id)

    return app


app = create_app()


# ── Run ─────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("honeypot.main:app", host="0.0.0.0", port=load_settings().port, reload=False)
