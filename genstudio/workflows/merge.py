"""Concatenate completed transition videos into one file."""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Protocol

from genstudio.errors import GenerationError, ValidationError
from genstudio.jobs.state import GenerationTracker
from genstudio.providers import ProviderRegistry
from genstudio.schemas.models import GenerationRecord, GenerationStatus, MergedVideoResult
from genstudio.storage import UploadStorage

logger = logging.getLogger(__name__)


class VideoJoiner(Protocol):
    async def join(self, inputs: list[Path], output: Path) -> None:
        ...


class FfmpegJoiner:
    """Stream-copy concatenation with the ffmpeg concat demuxer.

    All inputs must share codec parameters, which holds for clips from the
    same model and aspect ratio.
    """

    def __init__(self, binary: str = "ffmpeg", timeout: float = 120.0):
        self.binary = binary
        self.timeout = timeout

    async def join(self, inputs: list[Path], output: Path) -> None:
        if not inputs:
            raise ValidationError("Nothing to concatenate")
        if len(inputs) == 1:
            await asyncio.to_thread(shutil.copy, inputs[0], output)
            return

        concat_list = output.with_suffix(".concat.txt")
        concat_list.write_text(
            "".join(f"file '{p.resolve()}'\n" for p in inputs), encoding="utf-8"
        )
        cmd = [
            self.binary, "-y",
            "-f", "concat",
            "-safe", "0",
            "-i", str(concat_list),
            "-c", "copy",
            str(output),
        ]
        try:
            try:
                process = await asyncio.create_subprocess_exec(
                    *cmd,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except FileNotFoundError:
                raise GenerationError(f"ffmpeg not found at {self.binary!r}", code="MERGE_FAILED")
            try:
                _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
                raise GenerationError(f"ffmpeg timed out after {self.timeout}s", code="MERGE_FAILED")
            if process.returncode != 0:
                raise GenerationError(
                    f"ffmpeg concat failed: {stderr.decode(errors='replace')[-500:]}", code="MERGE_FAILED"
                )
            if not output.exists():
                raise GenerationError("ffmpeg produced no output", code="MERGE_FAILED")
        finally:
            if concat_list.exists():
                concat_list.unlink()


class VideoConcatenator:
    def __init__(
        self,
        tracker: GenerationTracker,
        storage: UploadStorage,
        joiner: VideoJoiner,
        registry: ProviderRegistry | None = None,
    ):
        self.tracker = tracker
        self.storage = storage
        self.joiner = joiner
        self.registry = registry

    def _select(self, generation_ids: list[str], allow_partial: bool) -> tuple[list[GenerationRecord], list[str]]:
        records: list[GenerationRecord] = []
        skipped: list[str] = []
        for generation_id in generation_ids:
            record = self.tracker.get(generation_id)
            ready = (
                record is not None
                and record.status == GenerationStatus.COMPLETED
                and bool(record.video_url)
            )
            if ready:
                records.append(record)
            elif allow_partial:
                skipped.append(generation_id)
            else:
                state = record.status.value if record else "missing"
                raise ValidationError(
                    f"Generation {generation_id} is not a completed video ({state})", field="videoIds"
                )
        return records, skipped

    async def _local_path(self, record: GenerationRecord) -> tuple[Path, bool]:
        """Path of the video on disk, and whether it was downloaded just for this merge."""
        url = record.video_url or ""
        if self.storage.exists(url):
            return self.storage.path_for(url), False
        headers: dict[str, str] = {}
        if self.registry is not None and record.provider:
            headers = self.registry.get(record.provider).result_headers(url)
        filename = await self.storage.download(url, headers=headers, default_mime="video/mp4")
        return self.storage.uploads_dir / filename, True

    async def merge(self, generation_ids: list[str], *, allow_partial: bool = False) -> MergedVideoResult:
        """Join the videos in the given order.

        Without ``allow_partial`` every id must be a completed video.
        With it, unfinished ids are skipped and reported.
        """
        if not generation_ids:
            raise ValidationError("No videos to merge", field="videoIds")
        records, skipped = self._select(generation_ids, allow_partial)
        if not records:
            raise ValidationError("None of the requested videos are completed", field="videoIds")

        inputs: list[Path] = []
        downloaded: list[Path] = []
        filename = self.storage.new_filename(".mp4")
        try:
            for record in records:
                path, fetched = await self._local_path(record)
                inputs.append(path)
                if fetched:
                    downloaded.append(path)
            await self.joiner.join(inputs, self.storage.uploads_dir / filename)
        finally:
            # Remote clips are fetched again on the next merge
            for path in downloaded:
                path.unlink(missing_ok=True)

        result = MergedVideoResult(
            generation_ids=[r.id for r in records],
            video_url=self.storage.public_url(filename),
            thumbnail_url=records[0].thumbnail_url,
            duration_seconds=sum(r.duration_seconds or 0 for r in records),
            partial=bool(skipped),
            skipped_ids=skipped,
        )
        logger.info(
            "Merged %d videos into %s (%.1fs%s)",
            len(records), filename, result.duration_seconds,
            f", skipped {len(skipped)}" if skipped else "",
        )
        return result
