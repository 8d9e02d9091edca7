"""Outbound HTTP for provider adapters: one place where httpx errors become GenerationErrors."""

from __future__ import annotations

import logging
from typing import Any, TypeVar

import httpx
import pydantic

from genstudio.errors import (
    AuthenticationError,
    GenerationError,
    TransientServiceError,
    UnknownProviderError,
    is_quota_message,
    quota_hint,
)

logger = logging.getLogger(__name__)

AUTH_STATUS = {401, 403}
TRANSIENT_STATUS = {408, 500, 502, 503, 504}

ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)

# Payload keys whose values may carry base64 media
INLINE_KEYS = {"image", "image_tail", "video", "bytesBase64Encoded", "data"}


def extract_error_message(response: httpx.Response) -> str:
    """Best-effort provider message: message, error, error.message, then raw text."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "error_message", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
        error = body.get("error")
        if isinstance(error, str) and error:
            return error
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    text = (response.text or "").strip()
    return text[:300] if text else f"HTTP {response.status_code}"


def extract_error_code(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    code = body.get("code") or body.get("error_code")
    if code is None and isinstance(body.get("error"), dict):
        code = body["error"].get("status") or body["error"].get("code")
    return str(code) if code is not None else None


def error_for_response(
    response: httpx.Response, provider: str, auth_hint: str | None = None
) -> GenerationError:
    """Map a non-2xx provider response onto the error taxonomy."""
    status = response.status_code
    message = extract_error_message(response)
    provider_code = extract_error_code(response)
    if status in AUTH_STATUS:
        text = f"{provider} authentication failed: {message}"
        if auth_hint:
            text = f"{text}. {auth_hint}"
        return AuthenticationError(text, provider=provider, status_code=status)
    if status in TRANSIENT_STATUS:
        return TransientServiceError(
            f"{provider} unavailable (HTTP {status}): {message}", provider=provider, status_code=status
        )
    text = f"{provider} API error (HTTP {status}): {provider_code or 'UNKNOWN_ERROR'} - {message}"
    if status == 429 or is_quota_message(message) or provider_code == "RESOURCE_EXHAUSTED":
        return UnknownProviderError(
            quota_hint(text), code="QUOTA_EXCEEDED", provider=provider, status_code=status
        )
    return UnknownProviderError(text, provider=provider, status_code=status)


def error_for_transport(exc: httpx.TransportError, provider: str) -> TransientServiceError:
    if isinstance(exc, httpx.TimeoutException):
        return TransientServiceError(f"{provider} request timed out", provider=provider)
    return TransientServiceError(f"{provider} connection failed: {exc}", provider=provider)


def parse_response(model: type[ModelT], body: dict[str, Any], provider: str) -> ModelT:
    """Validate a provider body against its wire schema; shape drift is an UnknownProviderError."""
    try:
        return model.model_validate(body)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        where = ".".join(str(p) for p in first.get("loc", ())) or "body"
        raise UnknownProviderError(
            f"{provider} returned an unexpected response ({where}: {first.get('msg')}): {str(body)[:200]}",
            provider=provider,
        )


def redact_payload(payload: Any) -> Any:
    """Copy of ``payload`` with inline media replaced by a size marker."""
    if isinstance(payload, dict):
        out = {}
        for key, value in payload.items():
            if key in INLINE_KEYS and isinstance(value, str) and len(value) > 256:
                out[key] = f"[base64 data: {len(value)} chars]"
            else:
                out[key] = redact_payload(value)
        return out
    if isinstance(payload, list):
        return [redact_payload(v) for v in payload]
    return payload


class ProviderHttp:
    """Thin async JSON client bound to one provider.

    A fresh ``httpx.AsyncClient`` is opened per call; ``transport`` lets
    tests plug in ``httpx.MockTransport``.
    """

    def __init__(
        self,
        provider: str,
        *,
        base_url: str = "",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        auth_hint: str | None = None,
    ):
        self.provider = provider
        self.base_url = base_url
        self.timeout = timeout
        self.transport = transport
        self.auth_hint = auth_hint

    def _client(self, timeout: float | None = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or self.timeout,
            transport=self.transport,
            follow_redirects=True,
        )

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        json: Any = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        try:
            async with self._client(timeout) as client:
                response = await client.request(method, url, headers=headers, json=json)
        except httpx.TransportError as e:
            raise error_for_transport(e, self.provider)
        if response.status_code >= 400:
            logger.warning(
                "%s %s %s -> HTTP %s: %s",
                self.provider, method, url, response.status_code, extract_error_message(response),
            )
            raise error_for_response(response, self.provider, self.auth_hint)
        return response

    async def request_json(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        response = await self.request(method, url, **kwargs)
        try:
            body = response.json()
        except ValueError:
            raise UnknownProviderError(
                f"{self.provider} returned a non-JSON response: {response.text[:200]}",
                provider=self.provider,
            )
        if not isinstance(body, dict):
            raise UnknownProviderError(f"{self.provider} returned unexpected JSON", provider=self.provider)
        return body

    async def get_bytes(
        self, url: str, *, headers: dict[str, str] | None = None, timeout: float | None = None
    ) -> tuple[bytes, str | None]:
        """GET raw bytes; returns (content, content-type)."""
        response = await self.request("GET", url, headers=headers, timeout=timeout)
        return response.content, response.headers.get("content-type")
