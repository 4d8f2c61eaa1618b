"""Request validation rules applied before any credit or cache activity."""

from __future__ import annotations

import re
from typing import Optional

from summarize_this.errors import ValidationFailed
from summarize_this.summarizer.models import METHODS, STYLES, SummarizationRequest

MIN_MAX_LENGTH = 50
MAX_MAX_LENGTH = 2000
MAX_FOCUS_AREAS = 8
MAX_FOCUS_CHARS = 64
MIN_PRIORITY = 1
MAX_PRIORITY = 10
MAX_ATTEMPTS_LIMIT = 10

_LANGUAGE_RE = re.compile(r"^[A-Za-z]{2,3}(-[A-Za-z0-9]{2,8})*$")


def validate_request(
    request: SummarizationRequest,
    min_text_length: int = 10,
    max_text_length: int = 100_000,
    methods: Optional[tuple] = None,
) -> None:
    """Raise ``ValidationFailed`` describing the first rule ``request`` breaks."""
    if not isinstance(request.user_id, str) or not request.user_id.strip():
        raise ValidationFailed("user_id is required", field="user_id")

    if not isinstance(request.payload, str):
        raise ValidationFailed("text must be a string", field="text")
    length = len(request.payload)
    if length < min_text_length:
        raise ValidationFailed(
            f"Text must be at least {min_text_length} characters long",
            field="text",
            length=length,
        )
    if length > max_text_length:
        raise ValidationFailed(
            f"Text must be at most {max_text_length} characters long",
            field="text",
            length=length,
        )

    allowed = methods or METHODS
    if request.method not in allowed:
        raise ValidationFailed(
            f"Invalid method. Must be one of: {', '.join(allowed)}",
            field="method",
        )

    options = request.options
    if not MIN_MAX_LENGTH <= options.max_length <= MAX_MAX_LENGTH:
        raise ValidationFailed(
            f"max_length must be between {MIN_MAX_LENGTH} and {MAX_MAX_LENGTH}",
            field="options.max_length",
        )
    if options.style not in STYLES:
        raise ValidationFailed(
            f"Invalid style. Must be one of: {', '.join(STYLES)}",
            field="options.style",
        )
    if len(options.focus_areas) > MAX_FOCUS_AREAS:
        raise ValidationFailed(
            f"At most {MAX_FOCUS_AREAS} focus areas are allowed",
            field="options.focus_areas",
        )
    for area in options.focus_areas:
        if not isinstance(area, str) or len(area) > MAX_FOCUS_CHARS:
            raise ValidationFailed(
                f"Focus areas must be strings of at most {MAX_FOCUS_CHARS} characters",
                field="options.focus_areas",
            )
    if not _LANGUAGE_RE.match(options.language or ""):
        raise ValidationFailed(
            "language must be a BCP-47 code such as 'en' or 'pt-BR'",
            field="options.language",
        )

    if not MIN_PRIORITY <= request.priority <= MAX_PRIORITY:
        raise ValidationFailed(
            f"priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}",
            field="priority",
        )
    if request.max_attempts is not None and not (
        1 <= request.max_attempts <= MAX_ATTEMPTS_LIMIT
    ):
        raise ValidationFailed(
            f"max_attempts must be between 1 and {MAX_ATTEMPTS_LIMIT}",
            field="max_attempts",
        )
