"""Privacy classifier -- decides where a request may be processed.

Rules are evaluated in a fixed priority order and the first hit wins:

1. PII pattern in the raw text (phone, email, SSN, card, street address,
   "from/to/for/about <Capitalized Name>")  -> LOCAL
2. Local-intent keyword (contacts, messages, device state, "my" ...)  -> LOCAL
3. Explicit cloud-intent keyword ("search the web", "ask claude" ...)  -> CLOUD
4. General-knowledge keyword ("what is", "explain", "python" ...)  -> ANONYMIZED
5. Anything else  -> LOCAL

Everything here is pure and deterministic; classification never raises.
"""

import re
from enum import Enum
from typing import List, Pattern, Tuple


class PrivacyTier(str, Enum):
    LOCAL = "local"
    ANONYMIZED = "anonymized"
    CLOUD = "cloud"

    @property
    def description(self) -> str:
        return _TIER_DESCRIPTIONS[self]


_TIER_DESCRIPTIONS = {
    PrivacyTier.LOCAL: "Never leaves device",
    PrivacyTier.ANONYMIZED: "Anonymized cloud processing",
    PrivacyTier.CLOUD: "Cloud processing allowed",
}

REDACTION_TOKENS = frozenset({"[EMAIL]", "[PHONE]", "[SSN]", "[CARD]", "[NAME]", "[ADDRESS]"})

# =============================================================================
# Keyword sets
# =============================================================================

LOCAL_KEYWORDS = (
    # Contacts & people
    "contact", "contacts", "phone number", "call", "dial",
    # Messaging
    "message", "messages", "sms", "text", "reply", "send message",
    "whatsapp", "telegram", "signal",
    # Calendar & reminders
    "calendar", "schedule", "meeting", "appointment", "reminder", "alarm",
    "event", "agenda",
    # Personal references
    "my", "mine", "private", "personal", "secret",
    # Files & media on device
    "photo", "gallery", "camera", "screenshot", "download", "file",
    "document", "pdf",
    # Device state
    "battery", "wifi", "bluetooth", "location", "gps",
    "notification", "notifications",
    # Sensitive data
    "password", "credential", "bank", "account", "ssn",
    "credit card", "health", "medical",
)

CLOUD_KEYWORDS = (
    "search the web", "google", "look up online", "latest news",
    "real-time", "realtime", "live", "current price",
    "stock price", "weather forecast", "trending",
    "use cloud", "use the cloud", "ask claude", "ask gpt",
    "ask openai", "ask anthropic", "external",
    "complex reasoning", "deep analysis",
    "translate to", "summarize this article",
    "browse", "web search", "internet",
)

ANONYMIZED_KEYWORDS = (
    "what is", "who is", "how to", "how do", "explain",
    "define", "definition", "meaning of",
    "code", "program", "function", "algorithm", "syntax",
    "python", "kotlin", "java", "javascript", "typescript",
    "bug", "error", "compile", "debug",
    "history of", "science", "math", "physics", "chemistry",
    "recipe", "instructions for", "tutorial",
    "compare", "difference between", "versus", "vs",
    "best practices", "recommendation",
    "capital of", "population of", "distance between",
)


def _keyword_pattern(keywords) -> Pattern:
    alternatives = "|".join(re.escape(k) for k in sorted(keywords, key=len, reverse=True))
    return re.compile(rf"\b(?:{alternatives})\b")


_LOCAL_RE = _keyword_pattern(LOCAL_KEYWORDS)
_CLOUD_RE = _keyword_pattern(CLOUD_KEYWORDS)
_ANONYMIZED_RE = _keyword_pattern(ANONYMIZED_KEYWORDS)

# =============================================================================
# PII patterns
# =============================================================================

EMAIL_RE = re.compile(r"[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}")
SSN_RE = re.compile(r"\b\d{3}-\d{2}-\d{4}\b")
CARD_RE = re.compile(r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b")
US_PHONE_RE = re.compile(r"(?:\+?1[\s.-]?)?\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}")
INTL_PHONE_RE = re.compile(r"\+\d{1,4}[\s.-]?\d{4,14}")
NAME_RE = re.compile(r"\b(from|to|for|about)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)")
ADDRESS_RE = re.compile(
    r"\b\d{1,5}\s+[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\s+(?:St|Ave|Blvd|Dr|Ln|Rd|Way|Ct|Pl)\b"
)

PII_PATTERNS: Tuple[Pattern, ...] = (
    US_PHONE_RE, INTL_PHONE_RE, EMAIL_RE, NAME_RE, SSN_RE, CARD_RE, ADDRESS_RE,
)

# Order matters: emails before names, SSNs and cards before phones.
_REDACTIONS: List[Tuple[Pattern, str]] = [
    (EMAIL_RE, "[EMAIL]"),
    (SSN_RE, "[SSN]"),
    (CARD_RE, "[CARD]"),
    (US_PHONE_RE, "[PHONE]"),
    (INTL_PHONE_RE, "[PHONE]"),
    (NAME_RE, r"\1 [NAME]"),
    (ADDRESS_RE, "[ADDRESS]"),
]


class PrivacyClassifier:
    """Stateless; one shared instance is fine across threads."""

    def classify(self, text: str) -> PrivacyTier:
        if self.contains_personal_data(text):
            return PrivacyTier.LOCAL

        lower = text.lower().strip()
        if _LOCAL_RE.search(lower):
            return PrivacyTier.LOCAL
        if _CLOUD_RE.search(lower):
            return PrivacyTier.CLOUD
        if _ANONYMIZED_RE.search(lower):
            return PrivacyTier.ANONYMIZED
        return PrivacyTier.LOCAL

    def redact(self, text: str) -> str:
        """Replace PII with placeholder tokens.

        Passes repeat until the text stops changing, so the result is a fixed
        point: ``redact(redact(x)) == redact(x)``.
        """
        current = text
        while True:
            redacted = current
            for pattern, replacement in _REDACTIONS:
                redacted = pattern.sub(replacement, redacted)
            if redacted == current:
                return redacted
            current = redacted

    def audit_response(self, text: str) -> bool:
        """True when a cloud response carries no PII beyond placeholder tokens."""
        return not self.contains_personal_data(text)

    @staticmethod
    def contains_personal_data(text: str) -> bool:
        return any(pattern.search(text) for pattern in PII_PATTERNS)
