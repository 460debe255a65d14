"""
Tests for the anonymization layer.
"""

import re

import pytest
from hypothesis import given, strategies as st

from signalvault.anonymization import Anonymizer, strip_html
from signalvault.config import AnonymizerConfig


@pytest.fixture
def anonymizer():
    return Anonymizer()


class TestTextRedaction:
    """Emails, phone numbers and first names become placeholders."""

    def test_email_redacted(self, anonymizer):
        result = anonymizer.anonymize_text("Ping jo.smith+ops@example.co.uk today")
        assert result == "Ping [EMAIL] today"

    def test_phone_formats_redacted(self, anonymizer):
        assert anonymizer.anonymize_text("call 555-123-4567") == "call [PHONE]"
        assert anonymizer.anonymize_text("call 555.123.4567") == "call [PHONE]"
        assert anonymizer.anonymize_text("call 5551234567") == "call [PHONE]"

    def test_names_case_insensitive(self, anonymizer):
        result = anonymizer.anonymize_text("John and SARAH met Mike")
        assert result == "[NAME] and [NAME] met [NAME]"

    def test_name_requires_word_boundary(self, anonymizer):
        assert anonymizer.anonymize_text("Johnson reviewed it") == "Johnson reviewed it"

    def test_other_content_untouched(self, anonymizer):
        text = "We shipped the release, 12 tickets closed."
        assert anonymizer.anonymize_text(text) == text

    def test_empty_and_none(self, anonymizer):
        assert anonymizer.anonymize_text("") == ""
        assert anonymizer.anonymize_text(None) == ""

    def test_custom_tokens(self):
        config = AnonymizerConfig(common_names=("alex",), name_token="<person>")
        anonymizer = Anonymizer(config)
        assert anonymizer.anonymize_text("alex and john") == "<person> and john"

    def test_glued_email_and_phone(self, anonymizer):
        assert anonymizer.anonymize_text("a@b.com5551234567") == "[EMAIL][PHONE]"


_PIECES = st.sampled_from([
    "john", "Sarah", "team", "mission", "555-123-4567", "5551234567",
    "ops@example.com", "a.b@c.io", "[NAME]", "[EMAIL]", "42", "we", "I",
])
_SEPARATORS = st.sampled_from([" ", "", ", ", ".", "\n"])


@st.composite
def messy_text(draw):
    pieces = draw(st.lists(_PIECES, max_size=12))
    out = ""
    for piece in pieces:
        out += draw(_SEPARATORS) + piece
    return out


class TestIdempotence:

    @given(messy_text())
    def test_anonymizing_twice_is_noop(self, text):
        anonymizer = Anonymizer()
        once = anonymizer.anonymize_text(text)
        assert anonymizer.anonymize_text(once) == once

    @given(st.text(max_size=200))
    def test_never_raises(self, text):
        assert isinstance(Anonymizer().anonymize_text(text), str)


class TestUserPseudonyms:

    def test_stable(self, anonymizer):
        assert anonymizer.anonymize_user_id("U123") == anonymizer.anonymize_user_id("U123")

    def test_distinct_ids_differ(self, anonymizer):
        assert anonymizer.anonymize_user_id("U123") != anonymizer.anonymize_user_id("U124")

    def test_format(self, anonymizer):
        assert re.fullmatch(r"user_\d+", anonymizer.anonymize_user_id("alice@corp"))

    def test_stable_across_instances(self):
        assert Anonymizer().anonymize_user_id("x") == Anonymizer().anonymize_user_id("x")

    @pytest.mark.parametrize("raw", ["", "   ", None])
    def test_missing_id_is_anonymous(self, anonymizer, raw):
        assert anonymizer.anonymize_user_id(raw) == "anonymous"


class TestStripHtml:

    def test_tags_removed(self):
        assert strip_html("<p>Hello <b>team</b></p>") == "Hello team"

    def test_script_and_style_bodies_dropped(self):
        html = "<style>p {color: red}</style><p>Visible</p><script>alert(1)</script>"
        assert strip_html(html) == "Visible"

    def test_plain_text_keeps_whitespace(self):
        assert strip_html("a  &amp;  b") == "a  &  b"

    def test_markup_only_is_empty(self):
        assert strip_html("<div><br/></div>") == ""

    def test_empty(self):
        assert strip_html("") == ""
        assert strip_html(None) == ""
