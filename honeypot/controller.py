"""
Session Turn Controller — accepts one inbound turn, decides the reply and
decides whether the turn triggers the extraction+report side effect.

Features:
- Reply generation bounded by a hard timeout, with stalling-phrase fallback
- Anti-repetition against the replies already sent in the session
- Exit-intent / turn-ceiling trigger with an at-most-once report claim
- Detached extraction+report jobs processed by a queue worker
- Periodic eviction of idle sessions
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Union

from honeypot.config import Settings
from honeypot.errors import (
    ReportDeliveryError,
    SessionNotFoundError,
    UpstreamError,
    UpstreamTimeoutError,
    ValidationError,
)
from honeypot.intel_extractor import (
    DEFAULT_AGENT_NOTES,
    UNKNOWN_SCAM_TYPE,
    compute_confidence,
    detect_scam_type,
    extract_all_intelligence,
    intelligence_from_llm,
    merge_intelligence,
    normalize_intelligence,
    normalize_scam_type,
    validate_llm_intelligence,
)
from honeypot.language import detect_language, is_exit_intent, pick_stall_phrase
from honeypot.models import ExtractedIntelligence, MessageItem, ReportPayload
from honeypot.reporter import ExtractionJob, JobQueue
from honeypot.session_store import (
    InMemorySessionStore,
    Session,
    SessionState,
    SessionStore,
    sweep_forever,
)


logger = logging.getLogger(__name__)

MIN_REPLY_LENGTH = 5


@dataclass
class TurnResult:
    reply: str
    language: str
    turn_count: int
    report_triggered: bool


@dataclass
class Extraction:
    intel: ExtractedIntelligence
    notes: str
    scam_type: str
    confidence: float


def choose_reply(candidate: Optional[str], language: str, used_phrases: Iterable[str]) -> str:
    """Keep the model's reply unless it is degenerate or already used in this session."""
    used = list(used_phrases)
    candidate = (candidate or "").strip()
    used_lower = {u.strip().lower() for u in used}
    if len(candidate) < MIN_REPLY_LENGTH or candidate.lower() in used_lower:
        return pick_stall_phrase(language, used)
    return candidate


def normalize_history(history: Optional[Iterable[Union[MessageItem, Dict[str, Any]]]]) -> List[MessageItem]:
    """Caller history as MessageItems with sender folded to 'scammer' or 'user'."""
    normalized = []
    for msg in history or []:
        if isinstance(msg, dict):
            sender, text = msg.get("sender", ""), msg.get("text", "")
        else:
            sender, text = msg.sender, msg.text
        text = (text or "").strip()
        if not text:
            continue
        sender = "scammer" if str(sender).lower() == "scammer" else "user"
        normalized.append(MessageItem(sender=sender, text=text))
    return normalized


class TurnController:
    """Owns all session state; the agent and reporter are stateless collaborators."""

    def __init__(self, settings: Settings, agent, reporter, store: Optional[SessionStore] = None):
        self.settings = settings
        self.agent = agent
        self.reporter = reporter
        self.store = store or InMemorySessionStore()
        self.jobs = JobQueue(self.process_job)
        self._sweeper: Optional[asyncio.Task] = None

    # ── Background tasks ───────────────────────────────────────

    def start_background(self) -> None:
        self.jobs.start()
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(
                sweep_forever(
                    self.store,
                    self.settings.sweep_interval_seconds,
                    self.settings.session_ttl_seconds,
                ),
                name="session-sweeper",
            )

    async def stop_background(self) -> None:
        await self.jobs.stop()
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None

    # ── Turn handling ──────────────────────────────────────────

    async def handle_turn(
        self,
        session_id: Optional[str],
        scammer_text: Optional[str],
        history: Optional[Iterable[Union[MessageItem, Dict[str, Any]]]] = None,
    ) -> TurnResult:
        session_id = (session_id or "").strip()
        scammer_text = (scammer_text or "").strip()
        if not session_id:
            raise ValidationError("Missing sessionId")
        if not scammer_text:
            raise ValidationError("Missing message text")

        prior = normalize_history(history)
        session = await self.store.get_or_create(session_id)

        # Caller knows more than we do (restart or eviction): its history is the context
        context = list(prior) if len(prior) > len(session.messages) else list(session.messages)
        language = detect_language(scammer_text)
        reply_turn = sum(1 for m in context if m.sender == "scammer") + 1

        candidate = await self._generate(session, context, scammer_text, language, reply_turn)
        reply = choose_reply(candidate, language, session.used_phrases)

        # Scammer line and reply are recorded together or not at all
        if len(prior) > len(session.messages):
            session.messages = list(prior)
        session.language = language
        session.append("scammer", scammer_text)
        session.append("user", reply)
        session.remember_phrase(reply)
        if session.state == SessionState.NEW:
            session.state = SessionState.ACTIVE
        turn_count = session.turn_count
        await self.store.update(session)

        triggered = False
        if self.should_report(session, scammer_text, reply):
            if await self.store.claim_report(session_id):
                self.jobs.enqueue(ExtractionJob(
                    session_id=session_id,
                    transcript=session.transcript(),
                    scammer_text=session.scammer_text(),
                    total_messages=session.total_messages,
                    engagement_seconds=session.engagement_seconds(),
                ))
                triggered = True
                logger.info("🚨 Report triggered for session %s at turn %d", session_id, turn_count)

        return TurnResult(reply=reply, language=language, turn_count=turn_count, report_triggered=triggered)

    def should_report(self, session: Session, scammer_text: str, reply: str) -> bool:
        if is_exit_intent(scammer_text, reply):
            return True
        return session.turn_count >= self.settings.max_turns

    async def _generate(
        self,
        session: Session,
        context: List[MessageItem],
        scammer_text: str,
        language: str,
        turn_count: int,
    ) -> str:
        """Model reply, or "" when the model failed; the caller substitutes a stalling line."""
        timeout = self.settings.llm_timeout_seconds
        try:
            return await asyncio.wait_for(
                self.agent.generate_reply(
                    context, scammer_text, language, turn_count,
                    used_phrases=list(session.used_phrases),
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("⏳ Reply generation timed out after %ss (session %s)", timeout, session.session_id)
        except UpstreamTimeoutError as e:
            logger.warning("⏳ %s (session %s)", e.message, session.session_id)
        except UpstreamError as e:
            logger.warning("⚠️ Reply generation failed: %s (session %s)", e.message, session.session_id)
        return ""

    # ── Extraction + report ────────────────────────────────────

    async def extract(self, transcript: str, scammer_text: str) -> Extraction:
        """LLM extraction unioned with regex extraction. Never raises on LLM failure."""
        regex_intel = extract_all_intelligence(scammer_text)
        llm_intel = ExtractedIntelligence()
        notes = ""
        scam_type = UNKNOWN_SCAM_TYPE
        confidence = None

        try:
            raw = await self.agent.extract_intelligence(transcript)
            # Validated against scammer text only so victim lines cannot leak in
            validated = validate_llm_intelligence(raw, scammer_text)
            llm_intel = intelligence_from_llm(validated)
            if isinstance(raw.get("agentNotes"), str):
                notes = raw["agentNotes"].strip()
            scam_type = normalize_scam_type(raw.get("scamType"))
            if isinstance(raw.get("confidence"), float):
                confidence = raw["confidence"]
            logger.info("🧠 LLM extraction completed")
        except UpstreamError as e:
            logger.warning("LLM extraction failed, regex only: %s", e.message)

        intel = merge_intelligence(llm_intel, regex_intel)
        if scam_type == UNKNOWN_SCAM_TYPE:
            scam_type = detect_scam_type(scammer_text)
            confidence = None
        if confidence is None:
            confidence = compute_confidence(intel, scam_type)
        return Extraction(intel=intel, notes=notes, scam_type=scam_type, confidence=confidence)

    def build_payload(
        self,
        session_id: str,
        intel: ExtractedIntelligence,
        notes: str,
        total_messages: int,
        engagement_seconds: int,
    ) -> ReportPayload:
        flat = normalize_intelligence(intel, placeholder=self.settings.report_empty_placeholder)
        return ReportPayload(
            sessionId=session_id,
            scamDetected=True,
            totalMessagesExchanged=total_messages,
            engagementDurationSeconds=engagement_seconds,
            extractedIntelligence=ExtractedIntelligence(**flat),
            agentNotes=notes or DEFAULT_AGENT_NOTES,
        )

    async def process_job(self, job: ExtractionJob) -> None:
        found = await self.extract(job.transcript, job.scammer_text)
        logger.info("🔎 Session %s classified as %s (confidence %.2f)",
                    job.session_id, found.scam_type, found.confidence)
        payload = self.build_payload(
            job.session_id, found.intel, found.notes, job.total_messages, job.engagement_seconds,
        )
        try:
            await self.reporter.send(payload)
        except ReportDeliveryError as e:
            logger.error("❌ REPORT FAILED: %s", e.message)
        finally:
            await self.store.set_state(job.session_id, SessionState.REPORTED)

    # ── Operator inspection ────────────────────────────────────

    async def get_session(self, session_id: str) -> Session:
        session = await self.store.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Unknown session: {session_id}")
        return session

    async def inspect(self, session_id: str) -> Dict[str, Any]:
        """Run the extraction pipeline on demand. No report, no state change."""
        session = await self.get_session(session_id)
        found = await self.extract(session.transcript(), session.scammer_text())
        return {
            "sessionId": session_id,
            "state": session.state.value,
            "turnCount": session.turn_count,
            "scamType": found.scam_type,
            "confidence": found.confidence,
            "extractedIntelligence": normalize_intelligence(found.intel),
            "agentNotes": found.notes or DEFAULT_AGENT_NOTES,
        }

    def snapshot(self, session: Session) -> Dict[str, List[str]]:
        """Regex-only view of a session, cheap enough to echo on every reply."""
        return normalize_intelligence(extract_all_intelligence(session.scammer_text()))
