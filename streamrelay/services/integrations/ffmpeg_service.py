"""FFmpeg helper service.

This module wraps the external `ffmpeg` binary used as the relay's opaque
transcoding tool: probing whether it is installed, and spawning one process
per relay session that reads raw media from stdin and pushes it to an RTMP
destination.

Usage:
    from streamrelay.services.integrations.ffmpeg_service import ffmpeg_service

    status = await ffmpeg_service.check_availability()
    if status.available:
        process = await ffmpeg_service.spawn(stream_key="abc123", label="conn-1")
        await process.write(chunk)
        await process.terminate()
"""

from __future__ import annotations

import asyncio
import contextlib
import re
import shutil
from collections import deque

from loguru import logger
from pydantic import BaseModel

from streamrelay.app_config import AppEnvironConfig, get_app_environ_config
from streamrelay.shared.api.utils import mask_secret
from streamrelay.utils.app_errors import AppError, AppErrorCode, HttpStatusCode

# ffmpeg ends progress lines with \r, diagnostics with \n
_STDERR_LINE_BREAK = re.compile(rb"[\r\n]")
_STDERR_READ_SIZE = 4096
_STDERR_MAX_LINE = 64 * 1024


class FfmpegStatus(BaseModel):
    """Result of probing the transcoding tool."""

    available: bool
    version: str | None = None
    path: str | None = None
    error: str | None = None


class FfmpegProcess:
    """Exclusive handle on one running ffmpeg process.

    Writes to stdin are serialized. `terminate()` is idempotent: the first call
    performs the teardown, later calls wait for it and return.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        *,
        label: str,
        stop_grace_seconds: float = 5.0,
    ):
        self._process = process
        self._label = label
        self._stop_grace_seconds = stop_grace_seconds
        self._write_lock = asyncio.Lock()
        self._stderr_tail: deque[str] = deque(maxlen=20)
        self._stderr_task: asyncio.Task | None = None
        self._terminate_task: asyncio.Task | None = None

        if process.stderr is not None:
            self._stderr_task = asyncio.create_task(self._drain_stderr())

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    @property
    def is_running(self) -> bool:
        return self._process.returncode is None and self._terminate_task is None

    @property
    def last_stderr(self) -> str:
        return "\n".join(self._stderr_tail)

    async def write(self, data: bytes) -> None:
        """Write one media chunk to the process stdin.

        Raises:
            AppError: E_TRANSCODER_WRITE_FAILED if the process is gone or the pipe broke.
        """
        async with self._write_lock:
            stdin = self._process.stdin
            if not self.is_running or stdin is None or stdin.is_closing():
                raise AppError(
                    errcode=AppErrorCode.E_TRANSCODER_WRITE_FAILED,
                    errmesg=f"Transcoder is not running (returncode={self.returncode})",
                    status_code=HttpStatusCode.INTERNAL_SERVER_ERROR,
                )
            try:
                stdin.write(data)
                await stdin.drain()
            except (BrokenPipeError, ConnectionResetError, OSError) as exc:
                raise AppError(
                    errcode=AppErrorCode.E_TRANSCODER_WRITE_FAILED,
                    errmesg=f"Failed writing to transcoder: {exc}",
                    status_code=HttpStatusCode.INTERNAL_SERVER_ERROR,
                ) from exc

    async def terminate(self) -> None:
        """Close stdin, send SIGTERM, and SIGKILL after the grace period."""
        if self._terminate_task is None:
            self._terminate_task = asyncio.create_task(self._terminate())
        await asyncio.shield(self._terminate_task)

    async def _terminate(self) -> None:
        process = self._process
        logger.info("[{}] Stopping transcoder pid={}", self._label, process.pid)

        if process.stdin is not None:
            with contextlib.suppress(OSError, RuntimeError):
                process.stdin.close()

        if process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                process.terminate()
            try:
                await asyncio.wait_for(process.wait(), timeout=self._stop_grace_seconds)
            except asyncio.TimeoutError:
                logger.warning(
                    "[{}] Transcoder pid={} did not exit within {}s, killing",
                    self._label,
                    process.pid,
                    self._stop_grace_seconds,
                )
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()

        # stderr reaches EOF once the process is gone; wait_for cancels a stuck drain
        if self._stderr_task is not None:
            try:
                await asyncio.wait_for(self._stderr_task, timeout=1.0)
            except asyncio.TimeoutError:
                pass
            except Exception as exc:
                logger.warning("[{}] Transcoder stderr drain failed: {}", self._label, exc)

        logger.info("[{}] Transcoder pid={} exited with {}", self._label, process.pid, process.returncode)

    async def _drain_stderr(self) -> None:
        """Read stderr in fixed-size chunks until EOF.

        Line iteration would stall on long runs of \\r-terminated progress
        output, and an unread pipe blocks ffmpeg.
        """
        stderr = self._process.stderr
        if stderr is None:
            return

        pending = b""
        while chunk := await stderr.read(_STDERR_READ_SIZE):
            *lines, pending = _STDERR_LINE_BREAK.split(pending + chunk)
            for raw in lines:
                self._record_stderr(raw)
            if len(pending) > _STDERR_MAX_LINE:
                self._record_stderr(pending)
                pending = b""
        self._record_stderr(pending)

    def _record_stderr(self, raw: bytes) -> None:
        line = raw.decode("utf-8", errors="replace").strip()
        if line:
            self._stderr_tail.append(line)
            logger.debug("[{}] ffmpeg: {}", self._label, line)


class FfmpegService:
    """Service wrapper for the ffmpeg command line tool."""

    def __init__(self, cfg: AppEnvironConfig | None = None) -> None:
        self._cfg = cfg or get_app_environ_config()
        self.ffmpeg_path = self._cfg.FFMPEG_PATH
        logger.info("FfmpegService initialized (ffmpeg_path={})", self.ffmpeg_path)

    async def check_availability(self) -> FfmpegStatus:
        """Run `ffmpeg -version` and report whether the tool can be invoked.

        Never raises: a missing or broken tool is reported in the returned status.
        """
        path = shutil.which(self.ffmpeg_path)
        try:
            process = await asyncio.create_subprocess_exec(
                self.ffmpeg_path,
                "-version",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            logger.warning("FFmpeg check failed: {}", exc)
            return FfmpegStatus(available=False, path=path, error=str(exc))

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self._cfg.FFMPEG_CHECK_TIMEOUT_SECONDS
            )
        except asyncio.TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()
            logger.warning("FFmpeg check timed out after {}s", self._cfg.FFMPEG_CHECK_TIMEOUT_SECONDS)
            return FfmpegStatus(available=False, path=path, error="FFmpeg version check timed out")

        if process.returncode != 0:
            error_output = stderr.decode("utf-8", errors="replace").strip()
            logger.warning("FFmpeg exited with code {}: {}", process.returncode, error_output)
            return FfmpegStatus(
                available=False,
                path=path,
                error=f"FFmpeg exited with code {process.returncode}: {error_output}",
            )

        output = stdout.decode("utf-8", errors="replace")
        version = output.split("\n")[0].strip() or None
        logger.debug("FFmpeg available: {}", version)
        return FfmpegStatus(available=True, version=version, path=path)

    def build_command(self, stream_key: str) -> list[str]:
        """Command line reading media from stdin and pushing FLV to the destination."""
        destination = f"{self._cfg.RELAY_RTMP_BASE_URL}{stream_key}"
        return [
            self.ffmpeg_path,
            "-hide_banner",
            "-nostats",
            "-re",
            "-i", "pipe:0",
            "-c:v", "libx264",
            "-preset", "veryfast",
            "-maxrate", "3000k",
            "-bufsize", "6000k",
            "-c:a", "aac",
            "-b:a", "160k",
            "-ar", "44100",
            "-f", "flv",
            destination,
        ]

    async def spawn(self, stream_key: str, *, label: str) -> FfmpegProcess:
        """Start a transcoder for one session.

        Raises:
            AppError: E_TOOL_UNAVAILABLE if the binary cannot be found,
                E_SPAWN_FAILED for any other OS-level failure.
        """
        command = self.build_command(stream_key)
        logger.info(
            "[{}] Starting transcoder to {}{}",
            label,
            self._cfg.RELAY_RTMP_BASE_URL,
            mask_secret(stream_key),
        )

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise AppError(
                errcode=AppErrorCode.E_TOOL_UNAVAILABLE,
                errmesg=f"FFmpeg is not available: {exc}",
                status_code=HttpStatusCode.SERVICE_UNAVAILABLE,
            ) from exc
        except OSError as exc:
            raise AppError(
                errcode=AppErrorCode.E_SPAWN_FAILED,
                errmesg=f"Failed to start transcoder: {exc}",
                status_code=HttpStatusCode.INTERNAL_SERVER_ERROR,
            ) from exc

        logger.info("[{}] Transcoder started pid={}", label, process.pid)
        return FfmpegProcess(
            process,
            label=label,
            stop_grace_seconds=self._cfg.RELAY_STOP_GRACE_SECONDS,
        )


ffmpeg_service = FfmpegService()
