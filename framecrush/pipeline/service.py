"""Crush job lifecycle: compile parameters, run ffmpeg once, clean up.

Every request gets its own :class:`CrushJob` with a unique output path, so
concurrent jobs share nothing but the staging directories. The blocking
ffmpeg call runs on a worker thread; cancelling the awaiting task sets the
job's cancel event, which makes the runner terminate ffmpeg and drop the
partial output before the artifacts are released.
"""

import asyncio
import logging
import secrets
import threading
import time
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from framecrush.config.models import AppConfig
from framecrush.config.parameters import compile_parameters
from framecrush.domain.models import CrushJob, FailureKind, JobStatus
from framecrush.infrastructure.ffmpeg import FFmpegAdapter
from framecrush.infrastructure.housekeeping import HousekeepingService

logger = logging.getLogger(__name__)

UPLOAD_PREFIX = "upload-"
OUTPUT_PREFIX = "crushed-"


def unique_token() -> str:
    """Millisecond timestamp plus random hex; collisions are practically impossible."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(6)}"


class CrushService:
    def __init__(
        self,
        config: AppConfig,
        ffmpeg_adapter: Optional[FFmpegAdapter] = None,
        housekeeping: Optional[HousekeepingService] = None,
    ):
        self.config = config
        self.ffmpeg = ffmpeg_adapter or FFmpegAdapter(config.encoder)
        self.housekeeping = housekeeping or HousekeepingService()
        self.upload_dir = Path(config.storage.upload_dir).resolve()
        self.output_dir = Path(config.storage.output_dir).resolve()

    def prepare(self):
        """Creates staging directories and drops leftovers from a crashed run."""
        self.housekeeping.ensure_dirs(self.upload_dir, self.output_dir)
        if self.config.storage.sweep_on_startup:
            self.housekeeping.sweep_stale(self.upload_dir, f"{UPLOAD_PREFIX}*")
            self.housekeeping.sweep_stale(self.output_dir, f"{OUTPUT_PREFIX}*.mp4")
        if not self.ffmpeg.is_available():
            logger.warning(
                f"FFMPEG_MISSING: '{self.config.encoder.ffmpeg_binary}' not found on PATH; every job will fail"
            )

    def new_upload_path(self, suffix: str = "") -> Path:
        return self.upload_dir / f"{UPLOAD_PREFIX}{unique_token()}{suffix}"

    def new_output_path(self) -> Path:
        return self.output_dir / f"{OUTPUT_PREFIX}{unique_token()}.mp4"

    def create_job(
        self,
        input_path: Union[str, Path],
        raw: Mapping[str, Any],
        output_path: Optional[Path] = None,
    ) -> CrushJob:
        params = compile_parameters(raw, self.config.presets)
        return CrushJob(
            input_path=Path(input_path),
            output_path=output_path or self.new_output_path(),
            parameters=params,
        )

    def _timeout_for(self, job: CrushJob) -> Optional[float]:
        try:
            size = job.input_path.stat().st_size
        except OSError:
            size = 0
        return self.config.encoder.timeout_for(size)

    def process(self, job: CrushJob, cancel_event: Optional[threading.Event] = None) -> CrushJob:
        """Runs ffmpeg exactly once for the job and records the outcome."""
        job.status = JobStatus.PROCESSING
        arguments = self.ffmpeg.build_command(job.parameters, job.input_path, job.output_path)

        start_time = time.monotonic()
        diagnostic = self.ffmpeg.run(
            job.input_path,
            job.output_path,
            arguments,
            cancel_event=cancel_event,
            timeout_s=self._timeout_for(job),
        )
        job.duration_seconds = time.monotonic() - start_time

        if diagnostic is None:
            job.status = JobStatus.COMPLETED
        else:
            job.status = JobStatus.FAILED
            job.diagnostic = diagnostic
            if diagnostic.kind == FailureKind.CANCELLED:
                logger.info(f"Job cancelled: {job.output_path.name}")
            else:
                logger.error(f"Job failed ({diagnostic.kind.value}): {job.output_path.name}: {diagnostic.message}")
        return job

    async def process_async(self, job: CrushJob, cancel_event: Optional[threading.Event] = None) -> CrushJob:
        cancel_event = cancel_event or threading.Event()
        worker = asyncio.ensure_future(asyncio.to_thread(self.process, job, cancel_event))
        try:
            return await asyncio.shield(worker)
        except asyncio.CancelledError:
            cancel_event.set()
            # Let the runner reap ffmpeg before the artifacts go away
            await asyncio.wait([worker])
            self.release(job)
            raise

    def release(self, job: CrushJob):
        """Deletes both artifacts; failures are logged, never raised."""
        for path in job.artifacts:
            self.housekeeping.remove_artifact(path)
