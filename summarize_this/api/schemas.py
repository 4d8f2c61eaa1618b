# summarize_this/api/schemas.py
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from summarize_this.summarizer.models import (
    SummarizationOptions,
    SummarizationRequest,
    new_request_id,
)

MethodLiteral = Literal["extractive", "ranked", "generative", "composite"]
StyleLiteral = Literal["concise", "balanced", "technical"]


class SummarizeOptionsModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_length: int = Field(default=200, description="Summary length cap in characters.")
    style: StyleLiteral = Field(default="concise")
    focus_areas: List[str] = Field(
        default_factory=list, description="Topics the summary should emphasize."
    )
    language: str = Field(default="en", description="BCP-47 language code.")
    sync_preferred: bool = Field(
        default=False, description="Run composite requests inline when small enough."
    )

    @field_validator("focus_areas", mode="before")
    @classmethod
    def normalize_focus(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        if isinstance(value, list):
            return [str(item) for item in value]
        return [str(value)]


class SummarizeRequestModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(..., description="Caller whose credits pay for the request.")
    text: str = Field(..., description="Text to summarize.")
    method: MethodLiteral = Field(default="extractive")
    options: SummarizeOptionsModel = Field(default_factory=SummarizeOptionsModel)
    priority: int = Field(default=5, description="1 (first) to 10 (last).")
    request_id: Optional[str] = Field(
        default=None, description="Idempotency key; minted when omitted."
    )
    max_attempts: Optional[int] = Field(default=None)

    def to_domain(self) -> SummarizationRequest:
        return SummarizationRequest(
            user_id=self.user_id,
            payload=self.text,
            method=self.method,
            options=SummarizationOptions(
                max_length=self.options.max_length,
                style=self.options.style,
                focus_areas=tuple(self.options.focus_areas),
                language=self.options.language,
                sync_preferred=self.options.sync_preferred,
            ),
            priority=self.priority,
            request_id=self.request_id or new_request_id(),
            max_attempts=self.max_attempts,
        )


class GrantRequestModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: int = Field(..., gt=0)
    reason: str = Field(default="")


class BalanceModel(BaseModel):
    user_id: str
    credits: int
    available: int
    held: int
    open_reservations: int


class ErrorModel(BaseModel):
    error_kind: str
    message: str
    details: Optional[dict] = None
