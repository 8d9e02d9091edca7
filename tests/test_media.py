"""Tests for media resolution (URL pass-through vs inline base64)."""

import base64

import pytest

from genstudio.errors import ValidationError
from genstudio.media import InlinePolicy, MediaResolver
from genstudio.media_types import detect_mime, extension_for_mime, strip_data_uri_prefix

from conftest import PNG_BYTES, PUBLIC_BASE_URL

REMOTE = "https://cdn.example.com/frame.png"


@pytest.mark.asyncio
async def test_remote_url_passes_through_without_fetch(media, fetch_calls):
    resolved = await media.resolve(REMOTE, "image")
    assert resolved.url == REMOTE
    assert not resolved.is_inline
    assert fetch_calls == []


@pytest.mark.asyncio
async def test_force_inline_fetches_remote(media, fetch_calls):
    resolved = await media.resolve(REMOTE, "image", InlinePolicy(force_inline=True))
    assert resolved.is_inline
    assert resolved.data == base64.b64encode(PNG_BYTES).decode()
    assert resolved.mime_type == "image/png"
    assert fetch_calls == [REMOTE]


@pytest.mark.asyncio
async def test_local_upload_is_inlined_without_data_uri_prefix(media, local_image, fetch_calls):
    resolved = await media.resolve(local_image, "image")
    assert resolved.is_inline
    assert not resolved.data.startswith("data:")
    assert base64.b64decode(resolved.data) == PNG_BYTES
    assert fetch_calls == []


@pytest.mark.asyncio
async def test_own_public_url_is_read_locally(media, local_image, fetch_calls):
    resolved = await media.resolve(f"{PUBLIC_BASE_URL}/uploads/{local_image}", "image")
    assert resolved.is_inline
    assert fetch_calls == []


@pytest.mark.asyncio
async def test_primary_inlined_when_secondary_present(media, fetch_calls):
    policy = InlinePolicy(inline_primary_with_secondary=True)
    main, tail = await media.resolve_pair(REMOTE, "https://cdn.example.com/end.png", policy)
    assert main.is_inline
    # The tail resolves on its own locality
    assert tail.url == "https://cdn.example.com/end.png"
    assert fetch_calls == [REMOTE]


@pytest.mark.asyncio
async def test_pair_without_secondary_passes_primary_through(media, fetch_calls):
    policy = InlinePolicy(inline_primary_with_secondary=True)
    main, tail = await media.resolve_pair(REMOTE, None, policy)
    assert main.url == REMOTE
    assert tail is None
    assert fetch_calls == []


@pytest.mark.asyncio
async def test_encoding_failure_names_the_slot(storage):
    async def broken_fetch(url):
        raise OSError("connection reset")

    resolver = MediaResolver(storage, fetch=broken_fetch)
    with pytest.raises(ValidationError) as exc:
        await resolver.resolve(REMOTE, "image_tail", InlinePolicy(force_inline=True))
    assert exc.value.field == "image_tail"
    assert "image_tail" in str(exc.value)


@pytest.mark.asyncio
async def test_missing_local_file_is_validation_error(media):
    with pytest.raises(ValidationError):
        await media.resolve("does-not-exist.png", "image")


@pytest.mark.asyncio
async def test_data_uri_is_decoded_not_fetched(media, fetch_calls):
    data_uri = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()
    resolved = await media.resolve(data_uri, "image")
    assert resolved.data == base64.b64encode(PNG_BYTES).decode()
    assert resolved.mime_type == "image/png"
    assert fetch_calls == []


def test_detect_mime_prefers_header_then_extension():
    assert detect_mime("clip.mov", "video/quicktime; charset=binary", "video") == "video/quicktime"
    assert detect_mime("photo.webp", None, "image") == "image/webp"
    assert detect_mime("no-extension", None, "image") == "image/jpeg"
    assert detect_mime("no-extension", None, "video") == "video/mp4"


def test_strip_data_uri_prefix_and_extensions():
    assert strip_data_uri_prefix("data:image/png;base64,QUJD") == "QUJD"
    assert strip_data_uri_prefix("QUJD") == "QUJD"
    assert extension_for_mime("image/png") == ".png"
