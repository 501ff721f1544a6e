import pytest
import shutil
import subprocess
import yaml
from pathlib import Path
from typing import List, Optional
from framecrush.config.models import AppConfig
from framecrush.domain.models import Diagnostic
from framecrush.infrastructure.ffmpeg import FFmpegAdapter
from framecrush.pipeline.service import CrushService

# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def app_config(tmp_path):
    """AppConfig whose staging directories live under tmp_path."""
    return AppConfig(
        storage={
            "upload_dir": str(tmp_path / "uploads"),
            "output_dir": str(tmp_path / "outputs"),
            "max_upload_bytes": 64 * 1024,
            "chunk_size": 4096,
        },
        cors={"allowed_origins": ["http://localhost:3000", "https://framecrush.net"]},
    )

@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a temporary YAML config file."""
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    conf_file = conf_dir / "framecrush.yaml"

    content = {
        'server': {'host': '127.0.0.1', 'port': 4000},
        'storage': {
            'upload_dir': str(tmp_path / "in"),
            'output_dir': str(tmp_path / "out"),
            'max_upload_bytes': 1048576,
        },
        'encoder': {
            'timeout_enabled': True,
            'base_timeout_s': 30,
            'per_mb_timeout_s': 2,
        },
        'presets': {
            'Night Vision': {'fps': 8, 'saturation': 0.1, 'crf': 33},
        },
    }

    with open(conf_file, 'w') as f:
        yaml.dump(content, f)

    return conf_file

# ============================================================================
# Fake ffmpeg
# ============================================================================

class FakeFFmpegAdapter(FFmpegAdapter):
    """Records invocations and writes a fake output instead of spawning ffmpeg."""

    def __init__(self, encoder=None, diagnostic: Optional[Diagnostic] = None, payload: bytes = b"crushed-mp4"):
        super().__init__(encoder)
        self.diagnostic = diagnostic
        self.payload = payload
        self.calls: List[List[str]] = []

    def is_available(self) -> bool:
        return True

    def run(self, input_path, output_path, arguments, cancel_event=None, timeout_s=None):
        self.calls.append(list(arguments))
        if self.diagnostic is not None:
            return self.diagnostic
        Path(output_path).write_bytes(self.payload + Path(output_path).name.encode())
        return None

@pytest.fixture
def fake_ffmpeg_cls():
    return FakeFFmpegAdapter

@pytest.fixture
def fake_ffmpeg(app_config):
    return FakeFFmpegAdapter(app_config.encoder)

@pytest.fixture
def crush_service(app_config, fake_ffmpeg):
    service = CrushService(app_config, fake_ffmpeg)
    service.prepare()
    return service

# ============================================================================
# Real ffmpeg Fixtures (for integration tests)
# ============================================================================

@pytest.fixture
def ffmpeg_bin():
    path = shutil.which("ffmpeg")
    if path is None:
        pytest.skip("ffmpeg not on PATH. Install ffmpeg to run integration tests.")
    return path

def _synthesize(ffmpeg_bin: str, target: Path, with_audio: bool) -> Path:
    cmd = [ffmpeg_bin, "-hide_banner", "-y", "-f", "lavfi", "-i", "testsrc=size=320x240:rate=25:duration=1"]
    if with_audio:
        cmd.extend(["-f", "lavfi", "-i", "sine=frequency=440:duration=1", "-c:a", "aac"])
    cmd.extend(["-c:v", "mpeg4", "-pix_fmt", "yuv420p", str(target)])
    result = subprocess.run(cmd, capture_output=True)
    if result.returncode != 0:
        pytest.skip(f"ffmpeg cannot synthesize test media: {result.stderr[-200:]!r}")
    return target

@pytest.fixture
def sample_video(tmp_path, ffmpeg_bin):
    """One second testsrc clip with a sine audio track."""
    return _synthesize(ffmpeg_bin, tmp_path / "sample.mp4", with_audio=True)

@pytest.fixture
def silent_video(tmp_path, ffmpeg_bin):
    """One second testsrc clip with no audio stream."""
    return _synthesize(ffmpeg_bin, tmp_path / "silent.mp4", with_audio=False)

# ============================================================================
# Markers
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (run real ffmpeg)"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
