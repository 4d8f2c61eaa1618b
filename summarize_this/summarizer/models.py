from __future__ import annotations

"""Domain models shared across summarization strategies."""

import time
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Literal, Optional, Tuple


MethodOption = Literal["extractive", "ranked", "generative", "composite"]
StyleOption = Literal["concise", "balanced", "technical"]
SentimentOption = Literal["positive", "neutral", "negative"]

METHODS: Tuple[str, ...] = ("extractive", "ranked", "generative", "composite")
STYLES: Tuple[str, ...] = ("concise", "balanced", "technical")
PROVIDER_METHODS = frozenset({"generative", "composite"})

DEGRADED_COMPOSITE = "composite (degraded)"


def new_request_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True, slots=True)
class SummarizationOptions:
    max_length: int = 200
    style: StyleOption = "concise"
    focus_areas: Tuple[str, ...] = ()
    language: str = "en"
    sync_preferred: bool = False

    def canonical(self) -> Dict[str, Any]:
        """Options that influence the result, in a stable normalized form."""
        focus = sorted({area.strip().lower() for area in self.focus_areas if area.strip()})
        return {
            "focus_areas": focus,
            "language": self.language.strip().lower(),
            "max_length": self.max_length,
            "style": self.style,
        }

    def scaled(self, factor: float) -> "SummarizationOptions":
        return SummarizationOptions(
            max_length=max(1, int(self.max_length * factor)),
            style=self.style,
            focus_areas=self.focus_areas,
            language=self.language,
            sync_preferred=self.sync_preferred,
        )


@dataclass(frozen=True, slots=True)
class SummarizationRequest:
    user_id: str
    payload: str
    method: MethodOption = "extractive"
    options: SummarizationOptions = field(default_factory=SummarizationOptions)
    priority: int = 5
    request_id: str = field(default_factory=new_request_id)
    max_attempts: Optional[int] = None
    created_at: float = field(default_factory=time.monotonic)

    @property
    def payload_bytes(self) -> int:
        return len(self.payload.encode("utf-8"))

    def snapshot(self) -> Dict[str, Any]:
        """Plain-data form used to replay a request after a restart."""
        data = asdict(self)
        data["options"]["focus_areas"] = list(self.options.focus_areas)
        data.pop("created_at")
        return data

    @classmethod
    def from_snapshot(cls, data: Dict[str, Any]) -> "SummarizationRequest":
        raw_options = dict(data.get("options") or {})
        raw_options["focus_areas"] = tuple(raw_options.get("focus_areas") or ())
        return cls(
            user_id=data["user_id"],
            payload=data["payload"],
            method=data["method"],
            options=SummarizationOptions(**raw_options),
            priority=data.get("priority", 5),
            request_id=data["request_id"],
            max_attempts=data.get("max_attempts"),
        )


@dataclass(slots=True)
class KeyTakeaways:
    points: List[str] = field(default_factory=list)
    sentiment: SentimentOption = "neutral"


@dataclass(slots=True)
class SummarizationResult:
    summary: str
    confidence: float
    method_used: str
    key_takeaways: KeyTakeaways = field(default_factory=KeyTakeaways)
    tokens_used: int = 0
    processing_ms: int = 0
    cached: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SummarizationResult":
        takeaways = data.get("key_takeaways") or {}
        return cls(
            summary=data["summary"],
            confidence=data["confidence"],
            method_used=data["method_used"],
            key_takeaways=KeyTakeaways(
                points=list(takeaways.get("points", [])),
                sentiment=takeaways.get("sentiment", "neutral"),
            ),
            tokens_used=data.get("tokens_used", 0),
            processing_ms=data.get("processing_ms", 0),
            cached=data.get("cached", False),
            metadata=dict(data.get("metadata") or {}),
        )

    def as_cached(self) -> "SummarizationResult":
        copy = SummarizationResult.from_dict(self.to_dict())
        copy.cached = True
        return copy
