"""
Anonymization Layer

RESPONSIBILITY: Remove personally identifying content before any feature
is computed or stored.
ALLOWED INPUTS: Raw message text, raw user handles
OUTPUTS: Redacted text, pseudonymous user tokens

WHAT THIS LAYER MUST NOT DO:
============================
- Raise on any string input
- Touch content other than the redacted spans
- Keep a mapping from pseudonym back to the raw handle
"""

from __future__ import annotations
from html import unescape
from html.parser import HTMLParser
from typing import List, Optional
import hashlib
import re

from ..config import AnonymizerConfig


EMAIL_PATTERN = re.compile(r'[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}')
PHONE_PATTERN = re.compile(r'\b\d{3}[-.]?\d{3}[-.]?\d{4}\b')


class MarkupStripper(HTMLParser):
    """Collects text content, dropping script and style bodies."""

    SKIP_TAGS = frozenset({'script', 'style', 'head', 'meta', 'link', 'noscript'})

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self._parts: List[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag, attrs):
        if tag in self.SKIP_TAGS:
            self._skip_depth += 1

    def handle_endtag(self, tag):
        if tag in self.SKIP_TAGS and self._skip_depth:
            self._skip_depth -= 1

    def handle_data(self, data):
        if not self._skip_depth:
            self._parts.append(data)

    def get_text(self) -> str:
        return ' '.join(' '.join(self._parts).split())


def strip_html(text: Optional[str]) -> str:
    """
    Reduce a chat/e-mail body to plain text.

    Text without markup is returned unchanged apart from entity decoding,
    so plain messages keep their original whitespace.
    """
    if not text:
        return ""
    if '<' not in text:
        return unescape(text)

    stripper = MarkupStripper()
    stripper.feed(text)
    stripper.close()
    return stripper.get_text()


class Anonymizer:
    """
    PII redaction for message text and user handles.

    Redaction is idempotent: placeholder tokens never match any of the
    patterns, so re-anonymizing redacted text is a no-op.
    """

    MAX_PASSES = 8

    def __init__(self, config: Optional[AnonymizerConfig] = None):
        self._config = config or AnonymizerConfig()

        names = sorted({n.strip().lower() for n in self._config.common_names if n.strip()})
        self._name_pattern = (
            re.compile(r'\b(?:' + '|'.join(re.escape(n) for n in names) + r')\b', re.IGNORECASE)
            if names else None
        )

    def anonymize_text(self, text: Optional[str]) -> str:
        """
        Replace e-mails, phone numbers and known first names with placeholders.

        Runs to a fixed point: removing an e-mail can expose a phone number
        that was glued to it ("a@b.com5556667777").
        """
        if not text:
            return ""

        for _ in range(self.MAX_PASSES):
            redacted = self._redact_once(text)
            if redacted == text:
                break
            text = redacted

        return text

    def _redact_once(self, text: str) -> str:
        text = EMAIL_PATTERN.sub(self._config.email_token, text)
        text = PHONE_PATTERN.sub(self._config.phone_token, text)
        if self._name_pattern is not None:
            text = self._name_pattern.sub(self._replace_name, text)
        return text

    def _replace_name(self, match: re.Match) -> str:
        # A configured name that spells the placeholder itself stays put
        token = self._config.name_token
        start = match.start() - 1
        if start >= 0 and match.string[start:start + len(token)] == token:
            return match.group(0)
        return token

    def anonymize_user_id(self, raw_id: Optional[str]) -> str:
        """
        Stable pseudonym for a raw user handle.

        SHA-256 over the full input, first 64 bits as the token number.
        Not a security primitive: the mapping is one-way and deterministic.
        """
        if not raw_id or not str(raw_id).strip():
            return self._config.anonymous_id

        digest = hashlib.sha256(str(raw_id).encode('utf-8')).hexdigest()
        return f"user_{int(digest[:16], 16)}"


__all__ = ['Anonymizer', 'strip_html', 'MarkupStripper', 'EMAIL_PATTERN', 'PHONE_PATTERN']
