"""
Intelligence extraction module.
Regex patterns + validation for the categories the report carries:
bank accounts, UPI IDs, phishing links, phone numbers, email addresses and
suspicious keywords.

Features:
- Obfuscation handling (spaced digits)
- Victim-ownership filter ("your account number is ..." is not scammer intel)
- LLM output post-validation against the conversation text
- Normalization so every category is always present as a list
- Keyword-scored scam-type classification with an evidence-based confidence
"""

import re
import logging
from typing import Dict, List, Set, Any

from honeypot.models import ExtractedIntelligence, INTEL_CATEGORIES


logger = logging.getLogger(__name__)

PLACEHOLDER = "None"
DEFAULT_AGENT_NOTES = (
    "Scammer engaged via confused victim persona. "
    "Payment and contact details were requested through simulated app and bank roadblocks."
)

# ── Regex Patterns ──────────────────────────────────────────────

# Phone numbers: Indian format with optional +91 / 0 prefix, other country codes
PHONE_PATTERNS = [
    re.compile(r'\+91[-.\s]?\d{5}[-.\s]?\d{5}\b'),             # +91-98765-43210
    re.compile(r'(?<!\d)(?:\+?91[-.\s]?|0)?[6-9]\d{9}(?!\d)'),  # 9876543210, 09876543210, 919876543210
    re.compile(r'\+(?!91)\d{1,3}[-.\s]?\d{3,5}[-.\s]?\d{4,6}\b'),  # other international formats
]

# Bank accounts: 9-18 digit numbers (standalone)
BANK_ACCT_PATTERN = re.compile(r'(?<![\d+])(\d{9,18})(?!\d)')

# UPI IDs: handle@provider
UPI_PATTERN = re.compile(r'\b([a-zA-Z0-9._-]{2,256}@[a-zA-Z0-9._-]{2,64})\b')

# Email addresses: standard email format
EMAIL_PATTERN = re.compile(r'\b([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})\b')

# Phishing links
URL_PATTERN = re.compile(
    r'(https?://[^\s<>"\']+|www\.[^\s<>"\']+|[a-zA-Z0-9][-a-zA-Z0-9]*\.[a-zA-Z]{2,}/[^\s<>"\']*)',
    re.IGNORECASE
)

# "your account number is", "your UPI ID:" ... only when directly before the value
VICTIM_OWNED = re.compile(
    r'\byour\s+(?:[\w/]+\s+){0,2}?(?:account|a/c|acct|number|no|phone|mobile|upi|card|id)\.?'
    r'(?:\s+(?:number|no\.?|id))?\s*(?:is|was|:|-|=)?\s*$',
    re.IGNORECASE,
)
VICTIM_LOOKBACK = 60

SAFE_DOMAINS = ['google.com/search', 'wikipedia.org', 'github.com', 'stackoverflow.com']

# Known UPI handles
UPI_HANDLES = {
    'paytm', 'ybl', 'okhdfcbank', 'okicici', 'oksbi', 'okaxis', 'apl', 'upi',
    'ikwik', 'axisbank', 'sbi', 'ibl', 'federal', 'kotak', 'indus',
    'hdfcbank', 'icici', 'axl', 'barodampay', 'mahb', 'cnrb',
    'pnb', 'unionbank', 'bob', 'cbi', 'idbi', 'fbl', 'rbl',
    'dbs', 'hsbc', 'citi', 'sc', 'freecharge', 'jio', 'waaxis',
    'wahdfcbank', 'waicici', 'wasbi', 'fakebank', 'fakeupi',
    'airtel', 'postbank', 'abfspay', 'ratn', 'kvb', 'idfcbank',
    'jupiteraxis', 'slice', 'niyoicici', 'fi', 'onecard',
}

SUSPICIOUS_KEYWORDS = [
    "otp", "upi pin", "pin", "cvv", "kyc", "verify", "verification",
    "urgent", "immediately", "blocked", "suspended", "frozen", "arrest",
    "legal action", "refund", "cashback", "lottery", "prize", "reward",
    "processing fee", "anydesk", "teamviewer", "apk", "click", "link",
    "account", "bank", "transfer", "payment", "aadhaar", "pan card",
]


# ── Text Normalization ──────────────────────────────────────────

def normalize_text(text: str) -> str:
    """
    Collapse spaces between digits so obfuscated numbers match
    (e.g. '9 8 7 6' -> '9876').
    """
    return re.sub(r'(\d)\s+(?=\d)', r'\1', text)


# ── Helper Functions ────────────────────────────────────────────

def _dedupe(values: List[str]) -> List[str]:
    """Deduplicate case-insensitively, preserving first occurrence."""
    seen: Set[str] = set()
    result = []
    for value in values:
        value = str(value).strip()
        key = value.lower()
        if key and key not in seen:
            seen.add(key)
            result.append(value)
    return result


def _is_victim_owned(text: str, start: int) -> bool:
    """True when the words just before a match attribute it to the victim."""
    window = text[max(0, start - VICTIM_LOOKBACK):start]
    return bool(VICTIM_OWNED.search(window))


def _is_upi_id(address: str) -> bool:
    """Check if an @-address is a UPI ID rather than an email."""
    if '@' not in address:
        return False
    domain = address.split('@')[1].lower().strip('.')
    # If it has a valid TLD, it's an email, not a UPI ID
    if re.match(r'^.*\.[a-z]{2,4}$', domain):
        return False
    if '.' not in domain:
        return True
    base_handle = domain.split('.')[0]
    return base_handle in UPI_HANDLES or domain in UPI_HANDLES


def _is_email(address: str) -> bool:
    """Check if an @-address is an email rather than a UPI ID."""
    if '@' not in address:
        return False
    domain = address.split('@')[1].lower()
    if '.' not in domain:
        return False
    return bool(re.match(r'^.*\.[a-z]{2,4}$', domain))


def _canonical_phone(raw: str) -> str:
    digits = re.sub(r'\D', '', raw)
    if raw.strip().startswith('+') and not digits.startswith('91'):
        return raw.strip()
    return f"+91-{digits[-10:]}"


# ── Extraction Functions ────────────────────────────────────────

def extract_phone_numbers(text: str) -> List[str]:
    """Extract phone numbers, canonicalised to +91-XXXXXXXXXX for Indian numbers."""
    phones = []
    seen: Set[str] = set()

    for search_text in [text, normalize_text(text)]:
        for pattern in PHONE_PATTERNS:
            for match in pattern.finditer(search_text):
                if _is_victim_owned(search_text, match.start()):
                    continue
                digits = re.sub(r'\D', '', match.group(0))
                if len(digits) < 10:
                    continue
                key = digits[-10:]
                if key in seen:
                    continue
                seen.add(key)
                phones.append(_canonical_phone(match.group(0)))

    return phones


def _phone_digit_keys(text: str) -> Set[str]:
    keys: Set[str] = set()
    for pattern in PHONE_PATTERNS:
        for match in pattern.finditer(text):
            digits = re.sub(r'\D', '', match.group(0))
            keys.add(digits)
            keys.add(digits[-10:])
    return keys


def extract_bank_accounts(text: str) -> List[str]:
    """Extract bank account numbers (9-18 digits, excluding phone numbers and timestamps)."""
    phone_digits = _phone_digit_keys(text)

    accounts = []
    for match in BANK_ACCT_PATTERN.finditer(text):
        num = match.group(1)
        if num in phone_digits:
            continue
        # Epoch millisecond timestamps
        if len(num) == 13 and 1500000000000 <= int(num) <= 2000000000000:
            continue
        if _is_victim_owned(text, match.start()):
            continue
        accounts.append(num)

    return _dedupe(accounts)


def extract_upi_ids(text: str) -> List[str]:
    """Extract UPI IDs from text."""
    upis = []
    for match in UPI_PATTERN.finditer(text):
        address = match.group(0)
        if _is_victim_owned(text, match.start()):
            continue
        if _is_upi_id(address):
            upis.append(address)
    return _dedupe(upis)


def extract_emails(text: str) -> List[str]:
    """Extract email addresses from text (excluding UPI IDs)."""
    emails = []
    for match in EMAIL_PATTERN.finditer(text):
        address = match.group(0)
        if _is_victim_owned(text, match.start()):
            continue
        if _is_email(address) and not _is_upi_id(address):
            emails.append(address)
    return _dedupe(emails)


def extract_urls(text: str) -> List[str]:
    """Extract phishing/suspicious URLs from text."""
    urls = []
    for match in URL_PATTERN.finditer(text):
        url = match.group(0).rstrip('.,;:!?)\'\"')
        if any(safe in url.lower() for safe in SAFE_DOMAINS):
            continue
        # Exclude apparent emails from being matched as purely a URL (unless it has http)
        if '@' in url and not url.lower().startswith('http'):
            continue
        urls.append(url)
    return _dedupe(urls)


def extract_suspicious_keywords(text: str) -> List[str]:
    tl = text.lower()
    found = [kw for kw in SUSPICIOUS_KEYWORDS if re.search(r'\b' + re.escape(kw) + r'\b', tl)]
    return _dedupe(found)


# ── Main Extraction Entry Point ─────────────────────────────────

def extract_all_intelligence(text: str) -> ExtractedIntelligence:
    """
    Extract every category from a block of text.
    This is the main entry point for regex-based extraction.
    """
    if not text:
        return ExtractedIntelligence()

    return ExtractedIntelligence(
        bankAccounts=extract_bank_accounts(text),
        upiIds=extract_upi_ids(text),
        phishingLinks=extract_urls(text),
        phoneNumbers=extract_phone_numbers(text),
        emailAddresses=extract_emails(text),
        suspiciousKeywords=extract_suspicious_keywords(text),
    )


# ── Merge Functions ─────────────────────────────────────────────

def merge_intelligence(a: ExtractedIntelligence, b: ExtractedIntelligence) -> ExtractedIntelligence:
    """Merge two intelligence objects, deduplicating by value."""
    return ExtractedIntelligence(**{
        key: _dedupe([*getattr(a, key), *getattr(b, key)])
        for key in INTEL_CATEGORIES
    })


def intelligence_from_llm(llm_data: Dict[str, Any]) -> ExtractedIntelligence:
    """Build a record from (validated) LLM output, ignoring malformed categories."""
    values = {}
    for key in INTEL_CATEGORIES:
        raw = (llm_data or {}).get(key)
        if isinstance(raw, list):
            values[key] = _dedupe([str(v) for v in raw if v and str(v).strip().lower() != PLACEHOLDER.lower()])
    return ExtractedIntelligence(**values)


# ── LLM Validation ─────────────────────────────────────────────

def validate_llm_intelligence(llm_data: dict, full_conversation_text: str) -> dict:
    """
    Validate LLM-extracted intelligence against the actual conversation text.
    Rejects any hallucinated values not found in the text.
    Keywords are free text and pass through unchecked.
    """
    if not llm_data or not full_conversation_text:
        return {}

    validated = {}
    text_lower = full_conversation_text.lower()
    text_normalized = normalize_text(full_conversation_text).lower()
    text_digits = re.sub(r'\D', '', full_conversation_text)

    for field_name, values in llm_data.items():
        if not isinstance(values, list):
            continue
        if field_name == "suspiciousKeywords":
            validated[field_name] = [str(v) for v in values if v]
            continue

        valid_values = []
        for val in values:
            if not val:
                continue
            val_str = str(val).strip()
            val_lower = val_str.lower()

            # Check if value or its digits appear in conversation
            digits_only = re.sub(r'\D', '', val_str)
            if (
                val_lower in text_lower
                or val_lower in text_normalized
                or (digits_only and len(digits_only) >= 9 and digits_only[-10:] in text_digits)
            ):
                valid_values.append(val_str)
            else:
                logger.info("🚫 LLM hallucination rejected: %s", field_name)

        if valid_values:
            validated[field_name] = valid_values

    return validated


# ── Normalization ───────────────────────────────────────────────

def normalize_intelligence(intel: ExtractedIntelligence, placeholder: bool = False) -> Dict[str, List[str]]:
    """Every category present as a list; empty ones become [PLACEHOLDER] when requested."""
    flat = {}
    for key in INTEL_CATEGORIES:
        values = _dedupe(getattr(intel, key) or [])
        if not values and placeholder:
            values = [PLACEHOLDER]
        flat[key] = values
    return flat


# ── Scam Type Classification ────────────────────────────────────

UNKNOWN_SCAM_TYPE = "unknown"

# (keywords, weight) per scam type; a type scores its weight once per matching group
SCAM_TYPE_SIGNALS = {
    "bank_fraud": [
        (["bank", "sbi", "hdfc", "icici", "axis", "account blocked", "account locked", "account suspended"], 3),
        (["otp", "cvv", "account number", "neft", "rtgs", "imps", "ifsc"], 2),
    ],
    "upi_fraud": [
        (["upi", "paytm", "phonepe", "gpay", "google pay", "cashback", "upi id"], 3),
        (["scan", "qr", "collect request", "upi pin", "bhim"], 2),
    ],
    "phishing": [
        (["click", "link", "http", "www", "kyc", "login"], 3),
        (["offer", "free", "claim", "verify account"], 2),
    ],
    "digital_arrest": [
        (["arrest", "warrant", "cbi", "narcotics", "money laundering", "fir ", "digital arrest"], 3),
        (["aadhaar", "customs", "case registered", "court"], 2),
    ],
    "courier_fraud": [
        (["courier", "parcel", "package", "delivery", "seized", "shipment", "fedex"], 3),
    ],
    "tech_support_fraud": [
        (["anydesk", "teamviewer", "remote", "install app", "apk", "screen share"], 3),
    ],
    "investment_fraud": [
        (["invest", "stock", "mutual fund", "returns", "profit", "trading", "crypto"], 3),
    ],
    "lottery_fraud": [
        (["lottery", "prize", "winner", "congratulations", "lucky draw", "won "], 3),
    ],
    "job_fraud": [
        (["job", "work from home", "salary", "hiring", "recruitment", "task"], 3),
    ],
}
SCAM_TYPES = tuple(SCAM_TYPE_SIGNALS) + (UNKNOWN_SCAM_TYPE,)


def detect_scam_type(text: str) -> str:
    """Best-scoring scam type for the scammer's text, or 'unknown' when nothing matches."""
    tl = (text or "").lower()
    scores = {scam_type: 0 for scam_type in SCAM_TYPE_SIGNALS}
    for scam_type, groups in SCAM_TYPE_SIGNALS.items():
        for words, weight in groups:
            if any(w in tl for w in words):
                scores[scam_type] += weight
    best = max(scores, key=scores.get)
    return best if scores[best] > 0 else UNKNOWN_SCAM_TYPE


def normalize_scam_type(value: Any) -> str:
    """Map an LLM label ('UPI Fraud', 'upi-fraud') onto SCAM_TYPES; anything else is 'unknown'."""
    if not isinstance(value, str):
        return UNKNOWN_SCAM_TYPE
    label = re.sub(r'[\s-]+', '_', value.strip().lower())
    if label in SCAM_TYPES:
        return label
    if label + "_fraud" in SCAM_TYPES:
        return label + "_fraud"
    return UNKNOWN_SCAM_TYPE


def compute_confidence(intel: ExtractedIntelligence, scam_type: str) -> float:
    """0.5 base plus 0.05 per identifier found and per known scam type, capped at 0.99."""
    evidence = sum(
        len(getattr(intel, key) or [])
        for key in INTEL_CATEGORIES if key != "suspiciousKeywords"
    )
    if scam_type != UNKNOWN_SCAM_TYPE:
        evidence += 1
    return round(min(0.99, 0.50 + evidence * 0.05), 2)
