from enum import Enum
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, ConfigDict

class JobStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

class FailureKind(str, Enum):
    PROCESSING_FAILED = "PROCESSING_FAILED"
    ENVIRONMENT_UNAVAILABLE = "ENVIRONMENT_UNAVAILABLE"
    TIMED_OUT = "TIMED_OUT"
    CANCELLED = "CANCELLED"  # client went away mid-encode

class EffectParameters(BaseModel):
    """Validated, bounded settings for one degradation run."""

    model_config = ConfigDict(frozen=True)

    frame_rate: float = 12.0
    crunch_width: int = 480
    grain: float = 14.0
    contrast: float = 1.2
    brightness: float = 0.02
    gamma: float = 1.0
    saturation: float = 0.8
    quality: int = 28

class Diagnostic(BaseModel):
    kind: FailureKind
    message: str
    detail: str = ""  # ffmpeg stderr tail, operator logs only
    return_code: Optional[int] = None

class CrushJob(BaseModel):
    input_path: Path
    output_path: Path
    parameters: EffectParameters
    status: JobStatus = JobStatus.PENDING
    diagnostic: Optional[Diagnostic] = None
    duration_seconds: Optional[float] = None

    @property
    def artifacts(self):
        return (self.input_path, self.output_path)
