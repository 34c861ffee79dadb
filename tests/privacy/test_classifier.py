"""Tests for privacy.classifier -- tier rules, redaction and response audit."""

import pytest

from privacy.classifier import PrivacyClassifier, PrivacyTier, REDACTION_TOKENS


@pytest.fixture
def classifier():
    return PrivacyClassifier()


class TestClassify:
    @pytest.mark.parametrize("text", [
        "remind me to call John at 555-123-4567",
        "email jane.doe@example.com the report",
        "my SSN is 123-45-6789",
        "search the web for Alice Smith",
        "what is the weather at 42 Oak St",
    ])
    def test_pii_is_local(self, classifier, text):
        assert classifier.classify(text) is PrivacyTier.LOCAL

    @pytest.mark.parametrize("text", [
        "read my messages",
        "what is on my calendar tomorrow",
        "turn on bluetooth",
    ])
    def test_local_keywords_win_over_general_knowledge(self, classifier, text):
        assert classifier.classify(text) is PrivacyTier.LOCAL

    @pytest.mark.parametrize("text", [
        "search the web for cheap flights",
        "ask claude to write a haiku",
        "latest news on the election",
    ])
    def test_cloud_keywords(self, classifier, text):
        assert classifier.classify(text) is PrivacyTier.CLOUD

    @pytest.mark.parametrize("text", [
        "what is the capital of France",
        "explain quantum entanglement",
        "how do I reverse a list in python",
    ])
    def test_general_knowledge_is_anonymized(self, classifier, text):
        assert classifier.classify(text) is PrivacyTier.ANONYMIZED

    def test_default_is_local(self, classifier):
        assert classifier.classify("hello there") is PrivacyTier.LOCAL
        assert classifier.classify("") is PrivacyTier.LOCAL

    def test_keywords_match_whole_words(self, classifier):
        # "my" inside "mystery" is not a personal reference.
        assert classifier.classify("what is a mystery novel") is PrivacyTier.ANONYMIZED

    def test_case_insensitive_keywords(self, classifier):
        assert classifier.classify("WHAT IS the speed of light") is PrivacyTier.ANONYMIZED

    def test_descriptions(self):
        assert PrivacyTier.LOCAL.description == "Never leaves device"
        assert PrivacyTier("anonymized") is PrivacyTier.ANONYMIZED


class TestRedact:
    def test_email_and_phone(self, classifier):
        text = "Email bob@example.com or call 555-123-4567"
        assert classifier.redact(text) == "Email [EMAIL] or call [PHONE]"

    def test_ssn_and_card_before_phone(self, classifier):
        assert classifier.redact("SSN 123-45-6789") == "SSN [SSN]"
        assert classifier.redact("card 4111 1111 1111 1111 please") == "card [CARD] please"

    def test_name_keeps_preposition(self, classifier):
        assert classifier.redact("Send this to Alice Smith") == "Send this to [NAME]"
        assert classifier.redact("a note from Bob") == "a note from [NAME]"

    def test_capitalized_preposition_is_not_a_name(self, classifier):
        assert classifier.redact("How To Cook Pasta") == "How To Cook Pasta"
        assert classifier.classify("How To Cook Pasta") is PrivacyTier.ANONYMIZED

    def test_address(self, classifier):
        assert classifier.redact("I live at 42 Oak St now") == "I live at [ADDRESS] now"

    def test_international_phone(self, classifier):
        assert classifier.redact("ring +44 20718387") == "ring [PHONE]"

    def test_no_pii_unchanged(self, classifier):
        text = "what is the capital of France"
        assert classifier.redact(text) == text

    @pytest.mark.parametrize("text", [
        "Email bob@example.com or call 555-123-4567",
        "Send this to Alice Smith at 42 Oak St",
        "card 4111-1111-1111-1111, SSN 123-45-6789, +1 (555) 123-4567",
        "about Mary about Jane Doe",
    ])
    def test_idempotent(self, classifier, text):
        once = classifier.redact(text)
        assert classifier.redact(once) == once
        assert not classifier.contains_personal_data(once)


class TestAudit:
    def test_placeholders_pass(self, classifier):
        assert classifier.audit_response("I sent the note to [NAME] at [EMAIL].")

    def test_leaked_pii_fails(self, classifier):
        assert not classifier.audit_response("Sure, call 555-123-4567.")
        assert not classifier.audit_response("Reach out to Alice Smith.")

    def test_redaction_tokens(self):
        assert "[PHONE]" in REDACTION_TOKENS
        assert len(REDACTION_TOKENS) == 6
