"""Shared fakes for the language model and the reporting callback."""

import asyncio
from dataclasses import replace

import pytest

from honeypot.config import Settings
from honeypot.errors import ReportDeliveryError, UpstreamError


class FakeAgent:
    """Stands in for HoneyPotAgent; records every call."""

    def __init__(self, replies=None, extraction=None, fail=False, hang=False, extract_error=False):
        self.replies = list(replies or [])
        self.extraction = extraction if extraction is not None else {}
        self.fail = fail
        self.hang = hang
        self.extract_error = extract_error
        self.calls = []
        self.extract_calls = []

    async def generate_reply(self, history, scammer_text, language, turn_number, used_phrases=None):
        self.calls.append({
            "history": list(history),
            "text": scammer_text,
            "language": language,
            "turn": turn_number,
        })
        # Yield like a real provider call so concurrent turns interleave here
        await asyncio.sleep(0)
        if self.hang:
            await asyncio.sleep(3600)
        if self.fail:
            raise UpstreamError("provider unavailable")
        if self.replies:
            return self.replies.pop(0)
        return f"Oh dear, which app should I open for step {turn_number}?"

    async def extract_intelligence(self, transcript):
        self.extract_calls.append(transcript)
        if self.extract_error:
            raise UpstreamError("extraction payload is not valid JSON")
        return dict(self.extraction)


class FakeReporter:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    async def send(self, payload):
        self.sent.append(payload)
        if self.fail:
            raise ReportDeliveryError("callback returned HTTP 500")


@pytest.fixture
def settings():
    return Settings(
        api_key="",
        openai_api_key="",
        llm_timeout_seconds=1.0,
        max_turns=25,
        rate_limit_max_requests=0,
    )


@pytest.fixture
def make_settings(settings):
    def _make(**overrides):
        return replace(settings, **overrides)
    return _make
