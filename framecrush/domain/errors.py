"""Request-level failures raised before or around a crush job.

Process failures are not exceptions: the runner returns a
:class:`~framecrush.domain.models.Diagnostic` and the job is marked FAILED.
The classes here cover the cases that stop a request before a job exists
(no upload, oversized upload) and the wrapper the HTTP layer raises when a
job ends without output.
"""

from typing import Optional

from framecrush.domain.models import Diagnostic, FailureKind


class CrushError(Exception):
    """Base class; ``public_message`` is what a client may see."""

    status_code = 500
    public_message = "Server error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.public_message)


class InputMissing(CrushError):
    status_code = 400
    public_message = "No file uploaded"


class FileTooLarge(CrushError):
    status_code = 413
    public_message = "File too large"

    def __init__(self, limit_bytes: int):
        self.limit_bytes = limit_bytes
        super().__init__(f"Upload exceeds {limit_bytes} bytes")


class ProcessingFailed(CrushError):
    status_code = 500
    public_message = "Video processing failed"

    def __init__(self, diagnostic: Diagnostic):
        self.diagnostic = diagnostic
        super().__init__(diagnostic.message)

    @property
    def environment_unavailable(self) -> bool:
        return self.diagnostic.kind == FailureKind.ENVIRONMENT_UNAVAILABLE
