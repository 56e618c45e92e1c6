"""
Data types for the encyclopedia conversation layer.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Union


class Role(str, Enum):
    """Transcript message author"""
    USER = "user"
    ASSISTANT = "assistant"


class InputMode(str, Enum):
    VOICE = "voice"
    TEXT = "text"


class ProcessingState(str, Enum):
    IDLE = "idle"
    BUSY = "busy"


class SpeechState(str, Enum):
    IDLE = "idle"
    SPEAKING = "speaking"


class ListeningState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"


class EngineLifecycleState(str, Enum):
    """Local engine lifecycle"""
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class Capability(str, Enum):
    TEXT = "text"
    VISION = "vision"


def clamp_score(value: Any, default: int = 0) -> int:
    """Coerce a score-like value into an int within 0..100."""
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        number = float(default)
    if not math.isfinite(number):
        number = float(default)
    score = int(round(number))
    return max(0, min(100, score))


@dataclass(frozen=True)
class Analysis:
    intent: str
    context: str


@dataclass(frozen=True)
class Recommendation:
    label: str
    score: int

    def __post_init__(self):
        object.__setattr__(self, "score", clamp_score(self.score))


@dataclass(frozen=True)
class StructuredResponse:
    """Normalized, schema-conformant assistant answer"""
    text: str
    sources: List[str] = field(default_factory=list)
    confidence_score: int = 0
    analysis: Optional[Analysis] = None
    recommendations: List[Recommendation] = field(default_factory=list)

    def __post_init__(self):
        object.__setattr__(self, "confidence_score", clamp_score(self.confidence_score))
        object.__setattr__(self, "sources", list(self.sources))
        object.__setattr__(self, "recommendations", list(self.recommendations))

    @classmethod
    def notice(cls, text: str) -> "StructuredResponse":
        """Bare answer carrying only text (used for surfaced failures)."""
        return cls(text=text, sources=[], confidence_score=0)

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation of the response schema"""
        data: Dict[str, Any] = {
            "text": self.text,
            "sources": list(self.sources),
            "confidence_score": self.confidence_score,
            "recommendations": [
                {"label": r.label, "score": r.score} for r in self.recommendations
            ],
        }
        if self.analysis is not None:
            data["analysis"] = {
                "intent": self.analysis.intent,
                "context": self.analysis.context,
            }
        return data


@dataclass(frozen=True)
class Message:
    """Single transcript entry. User content is text, assistant content is structured."""
    role: Role
    content: Union[str, StructuredResponse]

    @property
    def text(self) -> str:
        if isinstance(self.content, StructuredResponse):
            return self.content.text
        return self.content


@dataclass(frozen=True)
class Attachment:
    """A file prepared for one outbound message"""
    is_binary: bool
    mime_type: str
    data: str
    name: str

    @property
    def base64_payload(self) -> str:
        """Payload of a data URL without its header"""
        if self.is_binary and "," in self.data:
            return self.data.split(",", 1)[1]
        return self.data


@dataclass(frozen=True)
class ProviderConfig:
    """Active provider selection owned by the orchestrator"""
    provider: str
    credential: Optional[str] = None
    model: Optional[str] = None
    capabilities: FrozenSet[Capability] = frozenset({Capability.TEXT})

    @property
    def supports_vision(self) -> bool:
        return Capability.VISION in self.capabilities


@dataclass(frozen=True)
class ProgressEvent:
    """Local engine loading progress"""
    stage: str
    fraction: float
    done: bool = False
