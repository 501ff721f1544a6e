from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from framecrush.config.parameters import BUILTIN_PRESETS, normalize_preset_name

MEGABYTE = 1024 * 1024

class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = Field(default=3001, ge=1, le=65535)
    debug: bool = False

class StorageConfig(BaseModel):
    """Staging directories for uploads and encoded output."""
    upload_dir: str = "uploads"
    output_dir: str = "outputs"
    max_upload_bytes: int = Field(default=150 * MEGABYTE, gt=0)
    chunk_size: int = Field(default=MEGABYTE, gt=0)
    sweep_on_startup: bool = True

    @model_validator(mode="after")
    def validate_dirs(self):
        if self.upload_dir == self.output_dir:
            raise ValueError("upload_dir and output_dir must differ")
        return self

class CorsConfig(BaseModel):
    allowed_origins: List[str] = Field(default_factory=lambda: [
        "http://localhost:3000",
        "https://framecrush.net",
        "https://www.framecrush.net",
    ])
    allowed_methods: List[str] = Field(default_factory=lambda: ["GET", "POST", "OPTIONS"])
    allowed_headers: List[str] = Field(default_factory=lambda: ["Content-Type", "Authorization"])

    @field_validator("allowed_methods")
    @classmethod
    def normalize_methods(cls, v: List[str]) -> List[str]:
        return [m.strip().upper() for m in v if m.strip()]

class EncoderConfig(BaseModel):
    ffmpeg_binary: str = "ffmpeg"
    output_width: int = Field(default=1280, ge=16)
    video_codec: str = "libx264"
    preset: str = "veryfast"
    pixel_format: str = "yuv420p"
    audio_codec: str = "aac"
    audio_bitrate: str = "128k"
    timeout_enabled: bool = False
    base_timeout_s: float = Field(default=60.0, gt=0)
    per_mb_timeout_s: float = Field(default=4.0, ge=0)
    kill_grace_s: float = Field(default=3.0, gt=0)
    stderr_tail_lines: int = Field(default=40, ge=1)

    @field_validator("video_codec")
    @classmethod
    def validate_codec(cls, v: str) -> str:
        if v.strip().lower() == "copy":
            raise ValueError("video_codec must re-encode; 'copy' is not allowed")
        return v.strip()

    def timeout_for(self, input_size_bytes: int) -> Optional[float]:
        """Returns the encode deadline in seconds, or None when disabled."""
        if not self.timeout_enabled:
            return None
        return self.base_timeout_s + self.per_mb_timeout_s * (max(0, input_size_bytes) / MEGABYTE)

def _default_presets() -> Dict[str, Dict[str, Any]]:
    return {name: dict(values) for name, values in BUILTIN_PRESETS.items()}

class AppConfig(BaseModel):
    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    cors: CorsConfig = Field(default_factory=CorsConfig)
    encoder: EncoderConfig = Field(default_factory=EncoderConfig)
    presets: Dict[str, Dict[str, Any]] = Field(default_factory=_default_presets)
    log_path: Optional[str] = None

    @field_validator("presets")
    @classmethod
    def normalize_presets(cls, v: Dict[str, Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        return {normalize_preset_name(name): dict(values or {}) for name, values in v.items()}
