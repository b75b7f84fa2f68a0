# pagerescue/vision/providers/gemini.py
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from pagerescue.core.config import settings
from pagerescue.vision.errors import (
    VisionError,
    VisionInvalidInputError,
    VisionNonRetryableError,
    VisionRateLimitedError,
    VisionServerError,
    VisionTimeoutError,
)
from pagerescue.vision.types import VisionRequest, VisionResponse


def _classify_status(code: int | None, e: Exception) -> VisionError:
    if code == 429:
        return VisionRateLimitedError(f"Gemini rate limited: {e}")
    if code in (408, 504):
        return VisionTimeoutError(f"Gemini deadline exceeded: {e}")
    if code is not None and code >= 500:
        return VisionServerError(f"Gemini server error ({code}): {e}")
    if code in (400, 413, 415, 422):
        return VisionInvalidInputError(f"Gemini rejected the page image ({code}): {e}")
    return VisionNonRetryableError(f"Gemini non-retryable failure ({code}): {e}")


@dataclass
class GeminiVisionProvider:
    """
    Gemini vision provider using Google Gen AI SDK (google-genai), async surface.
    Single-attempt. Retries/backoff/breaker handled by pagerescue/vision/client.py.
    """
    name: str = "gemini"
    _client: Optional[genai.Client] = None

    def _get_client(self) -> genai.Client:
        if not settings.GEMINI_API_KEY:
            raise VisionNonRetryableError("GEMINI_API_KEY is missing")
        if self._client is None:
            self._client = genai.Client(api_key=settings.GEMINI_API_KEY)
        return self._client

    async def extract_text(self, req: VisionRequest) -> VisionResponse:
        client = self._get_client()
        start_ms = int(time.time() * 1000)

        try:
            # HttpOptions timeout is milliseconds; the client also enforces its own wait_for.
            http_opts = types.HttpOptions(timeout=int(req.timeout_seconds * 1000))

            cfg = types.GenerateContentConfig(
                temperature=req.temperature,
                max_output_tokens=req.max_output_tokens,
                http_options=http_opts,
            )

            resp = await client.aio.models.generate_content(
                model=req.model,
                contents=[
                    types.Part.from_bytes(data=req.image.data, mime_type=req.image.mime_type),
                    req.prompt,
                ],
                config=cfg,
            )

            text = (getattr(resp, "text", None) or "").strip()

            # Token usage: best-effort, won't break if missing
            input_tokens = None
            output_tokens = None
            usage = getattr(resp, "usage_metadata", None)
            if usage is not None:
                input_tokens = getattr(usage, "prompt_token_count", None)
                output_tokens = getattr(usage, "candidates_token_count", None)

            return VisionResponse(
                trace_id=req.trace_id,
                provider=self.name,
                model=req.model,
                output_text=text,
                latency_ms=int(time.time() * 1000) - start_ms,
                raw={"sdk_response_type": str(type(resp))},
                input_tokens=input_tokens,
                output_tokens=output_tokens,
            )

        # ---- classify retryable failures first (so client.py retries) ----
        except (httpx.TimeoutException, TimeoutError) as e:
            raise VisionTimeoutError(f"Gemini call timed out: {e}") from e
        except genai_errors.APIError as e:
            raise _classify_status(getattr(e, "code", None), e) from e
        except httpx.HTTPError as e:
            raise VisionServerError(f"Gemini http error (retryable): {e}") from e
        except VisionError:
            raise
        except Exception as e:
            msg = str(e).lower()
            if any(x in msg for x in ["429", "rate", "resource exhausted"]):
                raise VisionRateLimitedError(f"Gemini retryable failure: {e}") from e
            if any(x in msg for x in ["500", "503", "unavailable", "temporarily"]):
                raise VisionServerError(f"Gemini retryable failure: {e}") from e
            raise VisionNonRetryableError(f"Gemini non-retryable failure: {e}") from e
