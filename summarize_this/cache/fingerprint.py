"""Stable request fingerprints used as cache and single-flight keys."""

from __future__ import annotations

import hashlib
import unicodedata

import orjson

from summarize_this.summarizer.models import SummarizationRequest
from summarize_this.summarizer.text import collapse_whitespace


def normalize_text(text: str) -> str:
    return collapse_whitespace(unicodedata.normalize("NFC", text))


def canonical_document(request: SummarizationRequest) -> bytes:
    return orjson.dumps(
        {
            "method": request.method,
            "options": request.options.canonical(),
            "text": normalize_text(request.payload),
        },
        option=orjson.OPT_SORT_KEYS,
    )


def fingerprint(request: SummarizationRequest) -> str:
    """SHA-256 hex digest of the normalized (text, method, options) triple."""
    return hashlib.sha256(canonical_document(request)).hexdigest()
