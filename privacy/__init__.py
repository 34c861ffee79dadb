"""Privacy tier classification, PII redaction and response auditing."""

from privacy.classifier import REDACTION_TOKENS, PrivacyClassifier, PrivacyTier

__all__ = ["PrivacyClassifier", "PrivacyTier", "REDACTION_TOKENS"]
