# pagerescue/vision/telemetry.py

import logging
import time
from dataclasses import dataclass

logger = logging.getLogger("pagerescue.vision")

@dataclass
class VisionCallLog:
    trace_id: str
    provider: str
    model: str
    page_number: int
    prompt_name: str
    prompt_version: str
    latency_ms: int
    attempts: int
    ok: bool
    tokens_used: int = 0
    error_type: str | None = None

def now_ms() -> int:
    return int(time.time() * 1000)

def log_vision_call(item: VisionCallLog) -> None:
    logger.info(
        "vision_call trace_id=%s provider=%s model=%s page=%s prompt=%s@%s latency_ms=%s attempts=%s tokens=%s ok=%s error=%s",
        item.trace_id,
        item.provider,
        item.model,
        item.page_number,
        item.prompt_name,
        item.prompt_version,
        item.latency_ms,
        item.attempts,
        item.tokens_used,
        item.ok,
        item.error_type,
    )
