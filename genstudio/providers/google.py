"""Shared plumbing for the Google Generative Language providers."""

from __future__ import annotations

from genstudio.errors import AuthenticationError, is_quota_message
from genstudio.http import ProviderHttp, parse_response
from genstudio.media import MediaResolver
from genstudio.schemas.google import Operation, OperationError
from genstudio.schemas.models import GenerationStatus, ProviderStatus

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
AUTH_HINT = "Please verify GOOGLE_API_KEY."


class GoogleProviderBase:
    name = "google"
    label = "Google"

    def __init__(
        self,
        *,
        media: MediaResolver,
        api_key: str | None = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60.0,
        transport=None,
    ):
        self.media = media
        self.api_key = api_key
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._http = ProviderHttp(
            self.label, base_url=self.base_url, timeout=timeout, transport=transport, auth_hint=AUTH_HINT
        )

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            raise AuthenticationError(f"{self.label} is not configured. {AUTH_HINT}", provider=self.name)
        return {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}

    def result_headers(self, url: str) -> dict[str, str]:
        """Generated files on generativelanguage.googleapis.com need the API key."""
        if self.api_key and "generativelanguage.googleapis.com" in url:
            return {"x-goog-api-key": self.api_key}
        return {}

    async def get_operation(self, operation_name: str) -> Operation:
        body = await self._http.request_json("GET", f"/{operation_name.lstrip('/')}", headers=self._headers())
        return parse_response(Operation, body, self.label)

    @staticmethod
    def failed_status(error: OperationError) -> ProviderStatus:
        quota = error.status == "RESOURCE_EXHAUSTED" or is_quota_message(error.message)
        return ProviderStatus(
            status=GenerationStatus.FAILED,
            error_code="QUOTA_EXCEEDED" if quota else "GENERATION_FAILED",
            error_message=error.message,
        )
