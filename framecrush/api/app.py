"""FastAPI application: upload, crush, stream back, clean up."""

import asyncio
import logging
import re
import threading
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, AsyncIterator, BinaryIO, Dict, Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse
from starlette.datastructures import FormData, UploadFile
from starlette.formparsers import FormParser, MultiPartException, MultiPartParser

from framecrush.config.models import AppConfig
from framecrush.domain.errors import CrushError, FileTooLarge, InputMissing, ProcessingFailed
from framecrush.domain.models import CrushJob, JobStatus
from framecrush.pipeline.service import CrushService

logger = logging.getLogger(__name__)

CANONICAL_ROUTE = "/api/crush"
# Older clients post to these
ROUTE_ALIASES = ("/api/grunge", "/crush")
UPLOAD_FIELD = "video"
DOWNLOAD_FILENAME = "framecrush.mp4"
DISCONNECT_POLL_S = 0.5
# Multipart framing and parameter fields on top of the file itself
FORM_OVERHEAD_BYTES = 64 * 1024

_SAFE_SUFFIX = re.compile(r"^\.[A-Za-z0-9]{1,8}$")


class ReleasingFileResponse(FileResponse):
    """Streams the job output and releases both artifacts however the send ends."""

    def __init__(self, job: CrushJob, service: CrushService):
        super().__init__(job.output_path, media_type="video/mp4", filename=DOWNLOAD_FILENAME)
        self.job = job
        self.service = service

    async def __call__(self, scope, receive, send):
        try:
            await super().__call__(scope, receive, send)
        finally:
            self.service.release(self.job)


def _upload_suffix(filename: Optional[str]) -> str:
    suffix = Path(filename or "").suffix
    return suffix.lower() if _SAFE_SUFFIX.match(suffix) else ""


def _split_form(form: FormData) -> Tuple[UploadFile, Dict[str, str]]:
    upload = None
    raw: Dict[str, str] = {}
    for key, value in form.multi_items():
        if key == UPLOAD_FIELD:
            if upload is None and isinstance(value, UploadFile) and value.filename:
                upload = value
            continue
        if isinstance(value, str):
            raw.setdefault(key, value)
    if upload is None:
        raise InputMissing()
    return upload, raw


def _copy_limited(source: BinaryIO, target: Path, limit: int, chunk_size: int) -> int:
    written = 0
    with open(target, "wb") as out:
        while True:
            chunk = source.read(chunk_size)
            if not chunk:
                break
            written += len(chunk)
            if written > limit:
                raise FileTooLarge(limit)
            out.write(chunk)
    return written


def _reject_declared_oversize(request: Request, limit: int):
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > limit + FORM_OVERHEAD_BYTES:
        raise FileTooLarge(limit)


async def _limited_stream(stream: AsyncIterator[bytes], limit: int) -> AsyncIterator[bytes]:
    """Passes body chunks through, stopping the upload once it outgrows the limit."""
    received = 0
    async for chunk in stream:
        received += len(chunk)
        if received > limit + FORM_OVERHEAD_BYTES:
            raise FileTooLarge(limit)
        yield chunk


async def _read_form(request: Request, limit: int) -> FormData:
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    stream = _limited_stream(request.stream(), limit)
    try:
        if content_type == "multipart/form-data":
            return await MultiPartParser(request.headers, stream).parse()
        if content_type == "application/x-www-form-urlencoded":
            return await FormParser(request.headers, stream).parse()
    except MultiPartException as exc:
        logger.info(f"Unreadable multipart body: {exc.message}")
        raise InputMissing() from exc
    return FormData()


async def _watch_disconnect(request: Request, cancel_event: threading.Event):
    while not cancel_event.is_set():
        if await request.is_disconnected():
            logger.info("Client disconnected; cancelling job")
            cancel_event.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_S)


def create_app(config: Optional[AppConfig] = None, service: Optional[CrushService] = None) -> FastAPI:
    config = config or AppConfig()
    service = service or CrushService(config)
    storage = config.storage

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        service.prepare()
        logger.info(f"Staging dirs ready: uploads={service.upload_dir} outputs={service.output_dir}")
        yield

    app = FastAPI(title="framecrush", description="Video degradation API", lifespan=lifespan)
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors.allowed_origins,
        allow_methods=config.cors.allowed_methods,
        allow_headers=config.cors.allowed_headers,
    )

    @app.exception_handler(CrushError)
    async def crush_error_handler(request: Request, exc: CrushError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.public_message})

    @app.get("/", response_class=PlainTextResponse)
    def index() -> str:
        return "framecrush API is running"

    @app.get("/health")
    def health_check() -> Dict[str, str]:
        return {"status": "ok"}

    async def crush_video(request: Request):
        """Accepts a multipart upload (`video` plus parameter fields) and returns the crushed mp4."""
        _reject_declared_oversize(request, storage.max_upload_bytes)

        form = await _read_form(request, storage.max_upload_bytes)
        input_path: Optional[Path] = None
        try:
            upload, raw = _split_form(form)
            input_path = service.new_upload_path(_upload_suffix(upload.filename))
            size = await asyncio.to_thread(
                _copy_limited, upload.file, input_path, storage.max_upload_bytes, storage.chunk_size
            )
        except Exception:
            service.housekeeping.remove_artifact(input_path)
            raise
        finally:
            await form.close()

        job = service.create_job(input_path, raw)
        logger.info(f"Job accepted: {input_path.name} ({size} bytes) -> {job.output_path.name}")

        cancel_event = threading.Event()
        watcher = asyncio.create_task(_watch_disconnect(request, cancel_event))
        try:
            await service.process_async(job, cancel_event)
        except Exception:
            service.release(job)
            raise
        finally:
            watcher.cancel()

        if job.status != JobStatus.COMPLETED:
            service.release(job)
            raise ProcessingFailed(job.diagnostic)

        return ReleasingFileResponse(job, service)

    for path in (CANONICAL_ROUTE, *ROUTE_ALIASES):
        app.add_api_route(path, crush_video, methods=["POST"], include_in_schema=path == CANONICAL_ROUTE)

    return app
