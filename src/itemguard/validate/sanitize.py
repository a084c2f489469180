"""
Response sanitizer: lenient decoding of structured text returned by an oracle.

Oracles sometimes emit LaTeX-ish escapes inside JSON strings (\\^, \\(, \\[ ...)
which make a strict decoder reject otherwise well-formed output. The repair
pass only drops backslashes that do not start a valid JSON escape; it never
touches anything else.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_JSON_BLOCK_RE = re.compile(r"\{.*\}", re.S)
_FENCED_BLOCK_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.S | re.I)
# A valid escape pair (\" \\ \/ \b \f \n \r \t \u) or a lone backslash.
_ESCAPE_RE = re.compile(r'\\(["\\/bfnrtu])|\\')

RAW_LOG_CHARS = 500


def strip_code_fences(s: str) -> str:
    if not s:
        return ""
    s = s.strip()
    s = re.sub(r"^```(?:json)?\s*", "", s, flags=re.I)
    s = re.sub(r"\s*```$", "", s)
    return s.strip()


def extract_json_block(text: str, prefer_fenced: bool = False) -> str | None:
    """
    Return the first `{...}` block of a free-form response, or None.

    With prefer_fenced, a ```json fenced block wins over the greedy raw match
    (useful when the oracle adds prose with braces after the block).
    """
    if not text:
        return None
    if prefer_fenced:
        m = _FENCED_BLOCK_RE.search(text)
        if m:
            return m.group(1).strip()
    m = _JSON_BLOCK_RE.search(strip_code_fences(text))
    return m.group(0).strip() if m else None


def sanitize_escapes(raw: str) -> str:
    """Drop backslashes that do not start a valid JSON escape; valid pairs are kept whole."""
    return _ESCAPE_RE.sub(lambda m: m.group(0) if m.group(1) else "", raw)


def safe_json_parse(raw: str, source: str = "oracle") -> dict[str, Any] | None:
    """
    Strict decode, then one repair-and-retry. Returns None ("no signal") when
    both attempts fail; the raw text is logged for diagnosis.
    """
    try:
        obj = json.loads(raw)
        return obj if isinstance(obj, dict) else None
    except (json.JSONDecodeError, TypeError):
        pass

    try:
        obj = json.loads(sanitize_escapes(raw))
        logger.warning("[%s] Sanitized invalid escape sequences in JSON", source)
        return obj if isinstance(obj, dict) else None
    except (json.JSONDecodeError, TypeError) as e:
        logger.error(
            "[%s] Failed to parse JSON even after sanitization: %s. Raw (first %d chars): %r",
            source,
            e,
            RAW_LOG_CHARS,
            (raw or "")[:RAW_LOG_CHARS],
        )
        return None
