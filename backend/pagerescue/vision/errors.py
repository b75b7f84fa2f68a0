# pagerescue/vision/errors.py
class VisionError(Exception):
    """Base vision provider error (wrapped)."""

class VisionRetryableError(VisionError):
    """Transient error: timeouts, 429s, 5xx, network."""

class VisionTimeoutError(VisionRetryableError):
    """Per-call timeout elapsed."""

class VisionRateLimitedError(VisionRetryableError):
    """Provider throttled us (429 / resource exhausted)."""

class VisionServerError(VisionRetryableError):
    """5xx or transport failure."""

class VisionNonRetryableError(VisionError):
    """Bad request, auth, image too large, unsupported mime type."""

class VisionInvalidInputError(VisionNonRetryableError):
    """The page image or request itself was rejected."""

class VisionEmptyResponseError(VisionNonRetryableError):
    """Provider answered but returned no text for the page."""
