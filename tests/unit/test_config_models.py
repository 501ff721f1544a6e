import pytest
from pathlib import Path
from pydantic import ValidationError
from framecrush.config.models import AppConfig, EncoderConfig, StorageConfig, CorsConfig, MEGABYTE
from framecrush.config.loader import load_config

def test_defaults():
    config = AppConfig()
    assert config.server.port == 3001
    assert config.storage.max_upload_bytes == 150 * MEGABYTE
    assert config.encoder.output_width == 1280
    assert config.encoder.timeout_enabled is False
    assert set(config.presets) == {"punk-camcorder", "washed-dv", "brutal-bw", "hi-grime"}
    assert "https://framecrush.net" in config.cors.allowed_origins

def test_valid_config():
    data = {
        "server": {"port": 8080},
        "storage": {"upload_dir": "in", "output_dir": "out"},
        "cors": {"allowed_origins": ["https://example.com"], "allowed_methods": ["get", " post "]},
        "presets": {"My Look": {"fps": 6}},
    }
    config = AppConfig(**data)
    assert config.server.port == 8080
    assert config.cors.allowed_methods == ["GET", "POST"]
    assert config.presets == {"my-look": {"fps": 6}}

def test_same_staging_dirs_rejected():
    with pytest.raises(ValidationError):
        StorageConfig(upload_dir="tmp", output_dir="tmp")

def test_copy_codec_rejected():
    with pytest.raises(ValidationError):
        EncoderConfig(video_codec="copy")

def test_invalid_port():
    with pytest.raises(ValidationError):
        AppConfig(server={"port": 0})

def test_timeout_policy():
    encoder = EncoderConfig(timeout_enabled=True, base_timeout_s=10, per_mb_timeout_s=2)
    assert encoder.timeout_for(0) == 10
    assert encoder.timeout_for(5 * MEGABYTE) == pytest.approx(20)
    assert EncoderConfig().timeout_for(100 * MEGABYTE) is None

def test_load_config_from_yaml(config_yaml_path, monkeypatch):
    monkeypatch.delenv("PORT", raising=False)
    config = load_config(config_yaml_path)
    assert config.server.host == "127.0.0.1"
    assert config.server.port == 4000
    assert config.storage.max_upload_bytes == 1048576
    assert config.encoder.timeout_enabled is True
    assert config.presets["night-vision"]["crf"] == 33

def test_load_config_port_from_env(config_yaml_path, monkeypatch):
    monkeypatch.setenv("PORT", "5055")
    assert load_config(config_yaml_path).server.port == 5055

def test_load_config_explicit_missing_path(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")

def test_load_config_default_path_missing_uses_defaults(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("PORT", raising=False)
    config = load_config()
    assert config == AppConfig()

def test_load_config_empty_file(tmp_path, monkeypatch):
    monkeypatch.delenv("PORT", raising=False)
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_config(path).server.port == 3001
