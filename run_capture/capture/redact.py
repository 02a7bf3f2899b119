"""
Multi-pass secret redaction.

Passes run in a fixed order, each over the previous pass's output:

1. URL user-info      scheme://user:pass@   -> scheme://[REDACTED]@
2. Bearer tokens      bearer <token>        -> bearer [REDACTED_LEN:n]
3. JSON pairs         "secret": "value"     -> "secret": "[REDACTED_LEN:n]"
4. Header lines       Authorization: value  -> Authorization: [REDACTED_LEN:n]
5. key=value pairs    password=value        -> password=[REDACTED_LEN:n]

Later passes skip values that an earlier pass already replaced. The report
only ever receives a secret's length and sha256, never the secret.
"""

from __future__ import annotations

import re
from typing import Optional

from ..enums import RedactionType
from ..models import RedactionReport
from .hashing import sha256_hex

SENSITIVE_KEY = r"(?:token|secret|password|key|bearer|authorization)"
SENSITIVE_KEY_RE = re.compile(SENSITIVE_KEY, re.IGNORECASE)

PLACEHOLDER_PREFIX = "[REDACTED_LEN:"

# A value that an earlier pass already scrubbed, including "bearer [REDACTED_LEN:n]".
_ALREADY_REDACTED = r"(?:bearer\s+)?\[REDACTED"

_URL_USERINFO_RE = re.compile(r"([a-zA-Z][a-zA-Z0-9+.-]*://)([^/@\s:]+):([^@\s/]+)@")
_BEARER_RE = re.compile(r"\bbearer\s+([A-Za-z0-9._-]+)", re.IGNORECASE)
_JSON_PAIR_RE = re.compile(
    rf'("?{SENSITIVE_KEY}"?\s*:\s*)"(?!{_ALREADY_REDACTED})([^"]*)"', re.IGNORECASE
)
# Header keys may contain whole placeholders; their inner colon never ends a key.
_HEADER_RE = re.compile(
    r"^((?:\[REDACTED[^\]\n]*\]|\[(?!REDACTED)|[^:\n\[])+):[ \t]*([^\r\n]+)", re.MULTILINE
)
_HEADER_VALUE_REDACTED_RE = re.compile(rf"[\"']?{_ALREADY_REDACTED}", re.IGNORECASE)
_KEY_VALUE_RE = re.compile(
    rf"({SENSITIVE_KEY}\s*[:=]\s*[\"']?)(?!{_ALREADY_REDACTED})([^\s\"'\]]+)", re.IGNORECASE
)


def placeholder(value: str) -> str:
    """Length-preserving, content-free stand-in for a secret."""
    return f"{PLACEHOLDER_PREFIX}{len(value)}]"


def _record(
    report: RedactionReport, field: str, redaction_type: RedactionType, value: str
) -> None:
    report.record(field, redaction_type, len(value), sha256_hex(value))


def _redact_url_userinfo(text: str, field: str, report: RedactionReport) -> str:
    def replace(match: re.Match) -> str:
        scheme, user, password = match.group(1), match.group(2), match.group(3)
        _record(report, field, RedactionType.URL_USERINFO, f"{user}:{password}")
        return f"{scheme}[REDACTED]@"

    return _URL_USERINFO_RE.sub(replace, text)


def _redact_bearer_tokens(text: str, field: str, report: RedactionReport) -> str:
    def replace(match: re.Match) -> str:
        token = match.group(1)
        _record(report, field, RedactionType.BEARER, token)
        return f"bearer {placeholder(token)}"

    return _BEARER_RE.sub(replace, text)


def _redact_json_pairs(text: str, field: str, report: RedactionReport) -> str:
    def replace(match: re.Match) -> str:
        prefix, value = match.group(1), match.group(2)
        _record(report, field, RedactionType.JSON_VALUE, value)
        return f'{prefix}"{placeholder(value)}"'

    return _JSON_PAIR_RE.sub(replace, text)


def _redact_header_lines(text: str, field: str, report: RedactionReport) -> str:
    def replace(match: re.Match) -> str:
        key, value = match.group(1), match.group(2)
        if not SENSITIVE_KEY_RE.search(key):
            return match.group(0)
        if _HEADER_VALUE_REDACTED_RE.match(value):
            return match.group(0)
        _record(report, field, RedactionType.HEADER, value)
        return f"{key}: {placeholder(value)}"

    return _HEADER_RE.sub(replace, text)


def _redact_key_value_pairs(text: str, field: str, report: RedactionReport) -> str:
    def replace(match: re.Match) -> str:
        prefix, value = match.group(1), match.group(2)
        _record(report, field, RedactionType.KEY_VALUE, value)
        return f"{prefix}{placeholder(value)}"

    return _KEY_VALUE_RE.sub(replace, text)


_PASSES = (
    _redact_url_userinfo,
    _redact_bearer_tokens,
    _redact_json_pairs,
    _redact_header_lines,
    _redact_key_value_pairs,
)


def redact_text(text: str, field: str, report: RedactionReport) -> str:
    """Scrub secrets from ``text``, recording each redaction under ``field``."""
    output = text
    for redaction_pass in _PASSES:
        output = redaction_pass(output, field, report)
    return output


class Redactor:
    """Redacts every field of one run into a shared report.

    The report accumulates across calls and is never reset.
    """

    def __init__(self, report: Optional[RedactionReport] = None):
        self.report = report if report is not None else RedactionReport()

    def redact(self, text: str, field: str) -> str:
        return redact_text(text, field, self.report)
