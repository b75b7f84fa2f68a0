# pagerescue/vision/types.py
from dataclasses import dataclass
from enum import Enum
from typing import Any

JsonDict = dict[str, Any]


@dataclass(frozen=True)
class PageImage:
    page_number: int
    data: bytes
    mime_type: str = "image/png"


@dataclass(frozen=True)
class VisionRequest:
    trace_id: str
    page_number: int
    image: PageImage

    prompt_name: str                # registry key
    prompt_version: str             # e.g. "v1"
    prompt: str                     # rendered instructions

    provider: str                   # "gemini"
    model: str                      # e.g. "gemini-2.5-flash"
    temperature: float
    max_output_tokens: int
    timeout_seconds: float


@dataclass(frozen=True)
class VisionResponse:
    trace_id: str
    provider: str
    model: str
    output_text: str
    latency_ms: int
    raw: JsonDict | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None

    @property
    def tokens_used(self) -> int:
        return (self.input_tokens or 0) + (self.output_tokens or 0)


class PageFailureKind(str, Enum):
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    PROVIDER_ERROR = "provider_error"
    INVALID_INPUT = "invalid_input"
    CIRCUIT_OPEN = "circuit_open"
    EMPTY_RESPONSE = "empty_response"
    CANCELLED = "cancelled"
    ABORTED = "aborted"  # not attempted after an earlier page failed with continue_on_error=False


@dataclass(frozen=True)
class PageFailure:
    kind: PageFailureKind
    message: str
    attempts: int = 0


@dataclass(frozen=True)
class PageResult:
    page_number: int
    text: str = ""
    failure: PageFailure | None = None
    attempts: int = 0
    latency_ms: int = 0
    tokens_used: int = 0
    model: str | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None


@dataclass(frozen=True)
class PageExtractionOptions:
    concurrency: int = 3
    continue_on_error: bool = True
    prompt_version: str | None = None
    extra_instructions: str | None = None
