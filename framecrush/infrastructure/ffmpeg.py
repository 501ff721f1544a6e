import subprocess
import logging
import math
import shutil
import time
import threading
import queue
from collections import deque
from pathlib import Path
from typing import List, Optional, Sequence, Union
from framecrush.domain.models import EffectParameters, Diagnostic, FailureKind
from framecrush.config.models import EncoderConfig

PathLike = Union[str, Path]

def _format_number(value: float) -> str:
    value = round(value, 3)
    if value == 0:
        return "0"
    return f"{value:.3f}".rstrip("0").rstrip(".")

def build_filter_chain(params: EffectParameters, output_width: int = 1280) -> str:
    """Degradation stages in their fixed order, joined for a single -vf."""
    grain = int(math.floor(params.grain + 0.5))  # noise strength is an integer option
    stages = [
        f"fps={_format_number(params.frame_rate)}",
        f"scale={params.crunch_width}:-2",
        # Nearest-neighbour upscale is what makes the blocks visible
        f"scale={output_width}:-2:flags=neighbor",
        "eq=contrast={}:brightness={}:gamma={}:saturation={}".format(
            _format_number(params.contrast),
            _format_number(params.brightness),
            _format_number(params.gamma),
            _format_number(params.saturation),
        ),
        f"noise=alls={grain}:allf=t",
    ]
    return ",".join(stages)

def render_arguments(
    params: EffectParameters,
    input_path: PathLike,
    output_path: PathLike,
    encoder: Optional[EncoderConfig] = None,
) -> List[str]:
    """Constructs the ffmpeg command line arguments."""
    encoder = encoder or EncoderConfig()
    return [
        encoder.ffmpeg_binary,
        "-hide_banner",
        "-nostdin",
        "-y",  # Overwrite output files
        "-i", str(input_path),
        "-map", "0:v:0",
        "-map", "0:a?",  # audio is optional
        "-vf", build_filter_chain(params, encoder.output_width),
        "-c:v", encoder.video_codec,
        "-preset", encoder.preset,
        "-crf", str(params.quality),
        "-pix_fmt", encoder.pixel_format,
        "-c:a", encoder.audio_codec,
        "-b:a", encoder.audio_bitrate,
        "-movflags", "+faststart",
        str(output_path),
    ]

class FFmpegAdapter:
    """Runs a single ffmpeg invocation for a crush job."""

    def __init__(self, encoder: Optional[EncoderConfig] = None):
        self.encoder = encoder or EncoderConfig()
        self.logger = logging.getLogger(__name__)

    def is_available(self) -> bool:
        return shutil.which(self.encoder.ffmpeg_binary) is not None

    def build_command(self, params: EffectParameters, input_path: PathLike, output_path: PathLike) -> List[str]:
        return render_arguments(params, input_path, output_path, self.encoder)

    def _stop(self, process: subprocess.Popen):
        process.terminate()
        try:
            process.wait(timeout=self.encoder.kill_grace_s)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()

    def _discard(self, output_path: Path):
        try:
            output_path.unlink(missing_ok=True)
        except OSError as e:
            self.logger.warning(f"CLEANUP_FAILED: {output_path.name}: {e}")

    def run(
        self,
        input_path: PathLike,
        output_path: PathLike,
        arguments: Sequence[str],
        cancel_event: Optional[threading.Event] = None,
        timeout_s: Optional[float] = None,
    ) -> Optional[Diagnostic]:
        """Executes ffmpeg once. Returns None on success, a Diagnostic otherwise."""
        filename = Path(input_path).name
        output_path = Path(output_path)
        start_time = time.monotonic()
        deadline = start_time + timeout_s if timeout_s else None

        self.logger.info(f"FFMPEG_START: {filename}")
        self.logger.debug(f"FFMPEG_CMD: {' '.join(arguments)}")

        try:
            process = subprocess.Popen(
                list(arguments),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                universal_newlines=True,
                errors="replace",
                bufsize=1
            )
        except OSError as e:
            self.logger.error(f"FFMPEG_MISSING: cannot launch {arguments[0]!r}: {e}")
            return Diagnostic(
                kind=FailureKind.ENVIRONMENT_UNAVAILABLE,
                message="Transcoder is not available",
                detail=str(e),
            )

        stderr_tail: "deque[str]" = deque(maxlen=self.encoder.stderr_tail_lines)
        output_queue: "queue.Queue[Optional[str]]" = queue.Queue()

        def _reader():
            if not process.stderr:
                output_queue.put(None)
                return
            for line in process.stderr:
                output_queue.put(line)
            output_queue.put(None)

        reader_thread = threading.Thread(target=_reader, daemon=True)
        reader_thread.start()

        interrupted: Optional[FailureKind] = None
        while True:
            if cancel_event is not None and cancel_event.is_set():
                interrupted = FailureKind.CANCELLED
                break
            if deadline is not None and time.monotonic() > deadline:
                interrupted = FailureKind.TIMED_OUT
                break

            try:
                line = output_queue.get(timeout=0.1)
            except queue.Empty:
                if process.poll() is not None and not reader_thread.is_alive():
                    break
                continue

            if line is None:
                break
            line = line.rstrip()
            if line:
                stderr_tail.append(line)

        elapsed = time.monotonic() - start_time
        detail = "\n".join(stderr_tail)

        if interrupted is not None:
            self._stop(process)
            self._discard(output_path)
            if interrupted == FailureKind.CANCELLED:
                self.logger.info(f"FFMPEG_CANCELLED: {filename} elapsed={elapsed:.2f}s")
                message = "Processing cancelled"
            else:
                self.logger.error(f"FFMPEG_TIMEOUT: {filename} after {elapsed:.2f}s (limit {timeout_s:.0f}s)")
                message = "Processing timed out"
            return Diagnostic(kind=interrupted, message=message, detail=detail, return_code=process.returncode)

        process.wait()

        if process.returncode != 0:
            self._discard(output_path)
            self.logger.error(f"FFMPEG_END: {filename} status=failed code={process.returncode} elapsed={elapsed:.2f}s")
            if detail:
                self.logger.error(f"FFMPEG_STDERR: {filename}\n{detail}")
            return Diagnostic(
                kind=FailureKind.PROCESSING_FAILED,
                message=f"ffmpeg exited with code {process.returncode}",
                detail=detail,
                return_code=process.returncode,
            )

        if not output_path.exists():
            self.logger.error(f"FFMPEG_END: {filename} status=no_output elapsed={elapsed:.2f}s")
            return Diagnostic(
                kind=FailureKind.PROCESSING_FAILED,
                message="ffmpeg produced no output",
                detail=detail,
                return_code=process.returncode,
            )

        self.logger.info(f"FFMPEG_END: {filename} status=completed elapsed={elapsed:.2f}s")
        return None
