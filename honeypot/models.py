"""
Pydantic models for the Honeypot API.
Covers the inbound turn request, the chat response, the intelligence record
and the outbound report payload.
"""

from typing import List, Optional, Any, Union
from pydantic import BaseModel, Field


INTEL_CATEGORIES = (
    "bankAccounts",
    "upiIds",
    "phishingLinks",
    "phoneNumbers",
    "emailAddresses",
    "suspiciousKeywords",
)


# ── Request Models ──────────────────────────────────────────────

class MessageItem(BaseModel):
    """A single message in the conversation."""
    sender: str = "scammer"
    text: str = ""
    timestamp: Optional[Any] = None


class TurnRequest(BaseModel):
    """Incoming turn from the evaluator or the operator UI."""
    sessionId: Optional[str] = None
    message: Optional[Union[str, MessageItem]] = None
    conversationHistory: Optional[List[MessageItem]] = Field(default_factory=list)

    def message_text(self) -> str:
        if self.message is None:
            return ""
        if isinstance(self.message, str):
            return self.message.strip()
        return (self.message.text or "").strip()


# ── Response Models ─────────────────────────────────────────────

class TurnResponse(BaseModel):
    status: str = "success"
    reply: str
    extraction: Optional[dict] = None


# ── Intelligence Models ─────────────────────────────────────────

class ExtractedIntelligence(BaseModel):
    """Categorized findings from one extraction pass. Every key is always a list."""
    bankAccounts: List[str] = Field(default_factory=list)
    upiIds: List[str] = Field(default_factory=list)
    phishingLinks: List[str] = Field(default_factory=list)
    phoneNumbers: List[str] = Field(default_factory=list)
    emailAddresses: List[str] = Field(default_factory=list)
    suspiciousKeywords: List[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not any(getattr(self, key) for key in INTEL_CATEGORIES)


# ── Report Model ────────────────────────────────────────────────

class ReportPayload(BaseModel):
    """Body of the outbound reporting callback."""
    sessionId: str
    scamDetected: bool = True
    totalMessagesExchanged: int = 0
    engagementDurationSeconds: int = 0
    extractedIntelligence: ExtractedIntelligence = Field(default_factory=ExtractedIntelligence)
    agentNotes: str = ""
