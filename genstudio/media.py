"""Media resolution: send a reference by URL or inline as base64.

Decision order for one slot:

1. the policy forces inline encoding            -> inline
2. a secondary slot is present and the policy   -> inline the primary,
   requires the primary to go inline with it        resolve the secondary alone
3. the reference is remote (http/https) and not -> pass the URL through
   one of our own uploads
4. otherwise (a local upload)                   -> read and inline
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Awaitable, Callable

from pydantic import BaseModel

from genstudio.errors import GenerationError, ValidationError
from genstudio.http import ProviderHttp
from genstudio.media_types import detect_mime, is_data_uri, mime_from_data_uri, strip_data_uri_prefix
from genstudio.storage import UploadStorage

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], Awaitable[tuple[bytes, str | None]]]


class InlinePolicy(BaseModel):
    """What a provider/feature demands of its media slots."""

    force_inline: bool = False
    inline_primary_with_secondary: bool = False


PASS_THROUGH = InlinePolicy()


class ResolvedMedia(BaseModel):
    slot: str
    url: str | None = None
    data: str | None = None
    mime_type: str | None = None

    @property
    def is_inline(self) -> bool:
        return self.data is not None


def is_remote(ref: str) -> bool:
    return ref.lower().startswith(("http://", "https://"))


class MediaResolver:
    def __init__(self, storage: UploadStorage, fetch: Fetcher | None = None):
        self.storage = storage
        self._fetch = fetch or ProviderHttp("media", timeout=120.0).get_bytes

    async def resolve(
        self,
        ref: str,
        slot: str,
        policy: InlinePolicy = PASS_THROUGH,
        *,
        secondary_present: bool = False,
        kind: str = "image",
    ) -> ResolvedMedia:
        if not ref:
            raise ValidationError(f"Missing media for {slot}", field=slot)
        if policy.force_inline:
            return await self.encode(ref, slot, kind=kind)
        if secondary_present and policy.inline_primary_with_secondary:
            return await self.encode(ref, slot, kind=kind)
        if is_remote(ref) and not self.storage.exists(ref):
            return ResolvedMedia(slot=slot, url=ref)
        return await self.encode(ref, slot, kind=kind)

    async def resolve_pair(
        self,
        primary: str,
        secondary: str | None,
        policy: InlinePolicy = PASS_THROUGH,
        *,
        primary_slot: str = "image",
        secondary_slot: str = "image_tail",
    ) -> tuple[ResolvedMedia, ResolvedMedia | None]:
        """Resolve a main slot and its optional tail slot."""
        main = await self.resolve(primary, primary_slot, policy, secondary_present=bool(secondary))
        if not secondary:
            return main, None
        # The tail only follows the force-inline rule, otherwise its own locality
        tail_policy = InlinePolicy(force_inline=policy.force_inline)
        tail = await self.resolve(secondary, secondary_slot, tail_policy)
        return main, tail

    async def read(self, ref: str, kind: str = "image") -> tuple[bytes, str]:
        """Raw bytes and MIME type for a remote URL, data URI or local upload."""
        if is_data_uri(ref):
            data = base64.b64decode(strip_data_uri_prefix(ref), validate=True)
            return data, mime_from_data_uri(ref) or detect_mime("", None, kind)
        if is_remote(ref) and not self.storage.exists(ref):
            content, content_type = await self._fetch(ref)
            return content, detect_mime(ref, content_type, kind)
        content = await self.storage.read_bytes(ref)
        return content, detect_mime(ref, None, kind)

    async def encode(self, ref: str, slot: str, *, kind: str = "image") -> ResolvedMedia:
        try:
            content, mime = await self.read(ref, kind)
        except (OSError, GenerationError, binascii.Error, ValueError) as e:
            logger.warning("Could not encode %s from %s: %s", slot, ref[:80], e)
            raise ValidationError(f"Failed to encode {slot}: {e}", field=slot)
        data = base64.b64encode(content).decode("ascii")
        return ResolvedMedia(slot=slot, data=data, mime_type=mime)

    async def to_data_uri(self, ref: str, kind: str = "image") -> str:
        """Full ``data:`` URI, for display and for providers that want one."""
        resolved = await self.encode(ref, kind, kind=kind)
        return f"data:{resolved.mime_type};base64,{resolved.data}"
