import pytest
from pathlib import Path
from unittest.mock import patch
from framecrush.infrastructure.housekeeping import HousekeepingService

def test_ensure_dirs_is_idempotent(tmp_path):
    uploads = tmp_path / "uploads"
    outputs = tmp_path / "nested" / "outputs"

    service = HousekeepingService()
    service.ensure_dirs(uploads, outputs)
    service.ensure_dirs(uploads, outputs)

    assert uploads.is_dir()
    assert outputs.is_dir()

def test_remove_artifact(tmp_path):
    f = tmp_path / "crushed-1.mp4"
    f.write_bytes(b"data")

    service = HousekeepingService()
    assert service.remove_artifact(f) is True
    assert not f.exists()

def test_remove_artifact_twice_does_not_raise(tmp_path):
    f = tmp_path / "upload-1"
    f.write_bytes(b"data")

    service = HousekeepingService()
    assert service.remove_artifact(f) is True
    assert service.remove_artifact(f) is True
    assert service.remove_artifact(None) is True

def test_remove_artifact_handles_oserror(tmp_path):
    f = tmp_path / "protected.mp4"
    f.write_text("data")

    service = HousekeepingService()
    with patch.object(Path, 'unlink', side_effect=OSError("Permission denied")):
        # Should not raise exception
        assert service.remove_artifact(f) is False
    assert f.exists()

def test_sweep_stale_removes_matching_files_only(tmp_path):
    (tmp_path / "upload-a").write_text("data")
    (tmp_path / "upload-b.mov").write_text("data")
    (tmp_path / "notes.txt").write_text("keep me")
    (tmp_path / "upload-dir").mkdir()

    service = HousekeepingService()
    removed = service.sweep_stale(tmp_path, "upload-*")

    assert removed == 2
    assert sorted(p.name for p in tmp_path.iterdir()) == ["notes.txt", "upload-dir"]

def test_sweep_stale_missing_dir(tmp_path):
    assert HousekeepingService().sweep_stale(tmp_path / "missing", "*") == 0
