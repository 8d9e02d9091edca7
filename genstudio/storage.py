"""Local uploads directory: user inputs and downloaded provider results."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import uuid
from pathlib import Path

from genstudio.errors import StorageError, ValidationError
from genstudio.http import ProviderHttp
from genstudio.media_types import extension_for_mime, mime_from_data_uri

logger = logging.getLogger(__name__)

UPLOADS_PREFIX = "/uploads/"


class UploadStorage:
    """Files addressed by generated names.

    Names are uuid-based so concurrent writers never collide; deletes are
    idempotent.
    """

    def __init__(self, uploads_dir: Path, public_base_url: str = "", http: ProviderHttp | None = None):
        self.uploads_dir = Path(uploads_dir)
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/")
        self._http = http or ProviderHttp("download", timeout=120.0)

    # ------------------------------------------------------------------
    # Naming
    # ------------------------------------------------------------------

    @staticmethod
    def new_filename(extension: str = "") -> str:
        if extension and not extension.startswith("."):
            extension = f".{extension}"
        return f"{uuid.uuid4()}{extension.lower()}"

    def filename_for(self, ref: str) -> str | None:
        """Filename inside the uploads dir for a local ref or one of our public URLs."""
        if not ref:
            return None
        if ref.startswith(("http://", "https://")):
            prefix = f"{self.public_base_url}{UPLOADS_PREFIX}"
            if not self.public_base_url or not ref.startswith(prefix):
                return None
            ref = ref[len(prefix):]
        elif ref.startswith(UPLOADS_PREFIX):
            ref = ref[len(UPLOADS_PREFIX):]
        name = Path(ref).name
        return name or None

    def path_for(self, ref: str) -> Path:
        name = self.filename_for(ref)
        if not name:
            raise ValidationError(f"Not a local upload reference: {ref!r}")
        return self.uploads_dir / name

    def public_url(self, filename: str) -> str:
        return f"{self.public_base_url}{UPLOADS_PREFIX}{filename}"

    # ------------------------------------------------------------------
    # Read / write / delete
    # ------------------------------------------------------------------

    async def save_bytes(self, data: bytes, extension: str = "") -> str:
        filename = self.new_filename(extension)
        path = self.uploads_dir / filename
        try:
            await asyncio.to_thread(path.write_bytes, data)
        except OSError as e:
            logger.error("Could not write %s: %s", path, e)
            raise StorageError(f"Could not save file to uploads: {e.strerror or e}")
        return filename

    async def save_data_uri(self, data_uri: str) -> str:
        mime = mime_from_data_uri(data_uri) or "image/png"
        _, _, encoded = data_uri.partition(",")
        try:
            data = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError):
            raise ValidationError("Malformed data URI")
        return await self.save_bytes(data, extension_for_mime(mime))

    async def read_bytes(self, ref: str) -> bytes:
        path = self.path_for(ref)
        return await asyncio.to_thread(path.read_bytes)

    def exists(self, ref: str) -> bool:
        name = self.filename_for(ref)
        return bool(name) and (self.uploads_dir / name).is_file()

    def delete(self, ref: str | None) -> bool:
        """Delete a local file; returns False when there was nothing to delete."""
        name = self.filename_for(ref or "")
        if not name:
            return False
        path = self.uploads_dir / name
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info("Deleted upload %s", name)
        return True

    def list_files(self) -> list[Path]:
        return sorted(p for p in self.uploads_dir.iterdir() if p.is_file())

    # ------------------------------------------------------------------
    # Provider results
    # ------------------------------------------------------------------

    async def download(
        self,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        default_mime: str = "video/mp4",
        timeout: float = 120.0,
    ) -> str:
        """Download a remote result into uploads; returns the new filename."""
        content, content_type = await self._http.get_bytes(url, headers=headers, timeout=timeout)
        mime = (content_type or "").split(";")[0].strip() or default_mime
        filename = await self.save_bytes(content, extension_for_mime(mime, default_mime))
        logger.info("Downloaded %s (%d bytes) to %s", url[:80], len(content), filename)
        return filename
