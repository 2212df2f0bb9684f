"""
Language helpers — pure functions with no network access.

- detect_language: text -> language tag ("en" or "hi")
- stall_phrase_pool / pick_stall_phrase: stock stalling lines per language
- is_exit_intent: does a turn signal the conversation is ending?
"""

import re
from typing import Iterable, List


ENGLISH = "en"
HINGLISH = "hi"

# Devanagari block
_DEVANAGARI = re.compile(r'[ऀ-ॿ]')

# Romanized Hindi words that scammers commonly mix into English
HINGLISH_MARKERS = (
    "bhaiya", "bhai", "ruko", "theek", "thik", "acha", "accha", "beta",
    "hai", "hain", "nahi", "kya", "jaldi", "karo", "bhejo", "paisa",
    "aap", "ji", "turant", "abhi",
)

_HINGLISH_MARKER_RE = re.compile(
    r'\b(?:' + '|'.join(HINGLISH_MARKERS) + r')\b', re.IGNORECASE
)


def detect_language(text: str) -> str:
    """Return the language tag the reply should mirror."""
    if not text:
        return ENGLISH
    if _DEVANAGARI.search(text):
        return HINGLISH
    if _HINGLISH_MARKER_RE.search(text):
        return HINGLISH
    return ENGLISH


# ── Stalling phrase pools ───────────────────────────────────────

STALL_PHRASES = {
    ENGLISH: [
        "Wait, my app is freezing. One minute please.",
        "Sorry, the network is very weak here. What did you say?",
        "Hold on, my phone screen went blank. Please say that again?",
        "One moment, I am looking for my reading glasses.",
        "The bank app is showing some error. Which details should I type there?",
        "My son usually does all this. Can you explain slowly please?",
        "It says 'receiver not verified'. What name should I put?",
        "Sorry, the OTP has not come yet. Can you wait a little?",
    ],
    HINGLISH: [
        "Arre network chala gaya. Ek minute ruko.",
        "Beta, app hang ho gaya hai. Phir se batao?",
        "Ruko ruko, mera chashma dhoondh raha hoon.",
        "Bank ka app error dikha raha hai. Kya bharna hai wahan?",
        "OTP abhi tak nahi aaya bhaiya. Thoda ruko.",
        "Mera beta yeh sab karta hai. Dheere dheere samjhao na.",
        "Receiver verify nahi ho raha. Kaunsa naam daalun?",
    ],
}


def stall_phrase_pool(language: str) -> List[str]:
    return STALL_PHRASES.get(language, STALL_PHRASES[ENGLISH])


def pick_stall_phrase(language: str, used: Iterable[str]) -> str:
    """First phrase of the language pool not yet used; the first entry once all are used."""
    pool = stall_phrase_pool(language)
    used_set = {u.strip().lower() for u in used}
    for phrase in pool:
        if phrase.lower() not in used_set:
            return phrase
    return pool[0]


# ── Exit intent ─────────────────────────────────────────────────

EXIT_INTENT_KEYWORDS = (
    r"police",
    r"police station",
    r"cyber ?cell",
    r"cyber ?crime",
    r"good ?bye",
    r"bye",
    r"stop (?:calling|messaging|texting|contacting)(?: me)?",
    r"stop wasting my time",
    r"don'?t call",
    r"do not call",
    r"not interested",
    r"report you",
    r"block(?:ing)? your number",
    r"end (?:this|the) (?:call|chat|conversation)",
    r"alvida",
    r"band karo",
)

EXIT_INTENT_PATTERN = re.compile(
    r'\b(?:' + '|'.join(EXIT_INTENT_KEYWORDS) + r')\b', re.IGNORECASE
)


def is_exit_intent(*texts: str) -> bool:
    """True when any of the given texts contains an exit-intent keyword."""
    combined = " ".join(t for t in texts if t)
    return bool(EXIT_INTENT_PATTERN.search(combined))
