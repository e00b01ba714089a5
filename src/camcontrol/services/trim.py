"""Trim post-processor for finished recordings.

Re-encodes a recording starting one second before the detected start
offset, writing to a temp file in the same directory, then renames the
temp file over the original.

Atomic Commit:
    1. mkstemp() beside the recording
    2. ffmpeg writes the trimmed copy to the temp file
    3. rename temp → original (the only point the original changes)
    Any failure before step 3 deletes the temp file and leaves the
    original byte-for-byte untouched.

Logging Strategy:
    INFO  - Trim start and commit
    ERROR - Re-encode or rename failures
"""
from __future__ import annotations

import logging
import os
import tempfile
import time
from pathlib import Path

from .. import metrics
from ..config.ffmpeg_defaults import FFMPEG_BIN
from ..errors import PostProcessFailure, StartError
from ..utils.ffmpeg import build_trim_args, trim_start
from ..utils.files import atomic_replace, remove_quietly
from ..utils.strings import output_tail
from .process_runner import ProcessRunner

logger = logging.getLogger(__name__)


class TrimPostProcessor:
    """Removes the leading blank segment from a finished recording."""

    def __init__(self, runner: ProcessRunner, timeout: float) -> None:
        self.runner = runner
        self.timeout = timeout

    async def trim(self, path: Path, start_offset: float) -> Path:
        """Trim ``path`` in place.

        Args:
            path: Finished recording (its process must have exited)
            start_offset: Detected start of usable video in seconds

        Returns:
            The path of the trimmed recording (same as ``path``)

        Raises:
            PostProcessFailure: the original file is preserved
        """
        started = time.monotonic()
        try:
            self._check_source(path)
            self._commit(path, await self._reencode(path, start_offset))
        except PostProcessFailure as e:
            metrics.trims_total.labels(status="failure").inc()
            logger.error(f"Trim failed for {path.name}: {e}")
            raise

        metrics.trims_total.labels(status="success").inc()
        metrics.trim_duration_seconds.observe(time.monotonic() - started)
        logger.info(f"Trimmed {path.name} from {trim_start(start_offset):.3f}s")
        return path

    def _check_source(self, path: Path) -> None:
        try:
            size = path.stat().st_size
        except FileNotFoundError:
            raise PostProcessFailure(f"Recording file not found: {path}") from None
        except OSError as e:
            raise PostProcessFailure(f"Recording file unreadable: {e}") from e
        if size == 0:
            raise PostProcessFailure(f"Recording file is empty: {path}")

    async def _reencode(self, path: Path, start_offset: float) -> Path:
        """Write the trimmed copy to a temp file; return the temp path."""
        try:
            fd, temp_name = tempfile.mkstemp(
                dir=path.parent,
                prefix=f".{path.stem}.",
                suffix=".trim.mp4"
            )
            os.close(fd)
        except OSError as e:
            raise PostProcessFailure(f"Cannot create temp file beside {path.name}: {e}") from e

        temp_path = Path(temp_name)
        logger.info(f"Trimming {path.name}: start offset {start_offset:.3f}s")
        written = False
        try:
            try:
                result = await self.runner.run_sync(
                    FFMPEG_BIN,
                    build_trim_args(path, temp_path, start_offset),
                    self.timeout
                )
            except StartError as e:
                raise PostProcessFailure(f"ffmpeg trim could not start: {e}") from e

            if result.timed_out:
                raise PostProcessFailure(f"ffmpeg trim timed out after {self.timeout:.0f}s")
            if result.returncode != 0:
                raise PostProcessFailure(
                    f"ffmpeg trim error (code {result.returncode}): {output_tail(result.output)}"
                )
            try:
                size = temp_path.stat().st_size
            except OSError as e:
                raise PostProcessFailure(f"Trim output unreadable: {e}") from e
            if size == 0:
                raise PostProcessFailure("ffmpeg trim produced an empty file")

            written = True
            return temp_path
        finally:
            if not written:
                remove_quietly(temp_path)

    def _commit(self, path: Path, temp_path: Path) -> None:
        try:
            atomic_replace(temp_path, path)
        except OSError as e:
            remove_quietly(temp_path)
            raise PostProcessFailure(f"Failed to overwrite original file: {e}") from e
