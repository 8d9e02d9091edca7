"""Request-scoped access to the service container built at startup."""

from fastapi import HTTPException, Request, UploadFile

from genstudio.container import Container


def get_container(request: Request) -> Container:
    return request.app.state.container


async def save_upload(container: Container, upload: UploadFile | None) -> str | None:
    """Store one multipart file in uploads; returns its filename."""
    if upload is None or not upload.filename:
        return None
    content_type = upload.content_type or ""
    if not content_type.startswith(("image/", "video/")):
        raise HTTPException(status_code=400, detail=f"Unsupported file type: {content_type or 'unknown'}")

    content = await upload.read()
    limit = container.settings.max_upload_bytes
    if len(content) > limit:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size is {limit // (1024 * 1024)} MB.",
        )
    extension = upload.filename.rsplit(".", 1)[-1] if "." in upload.filename else ""
    return await container.storage.save_bytes(content, extension)
