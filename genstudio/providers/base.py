"""Generation provider protocol and the shared retry policy."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Protocol, TypeVar

from genstudio.errors import TransientServiceError
from genstudio.schemas.models import GenerationRequest, ProviderJob, ProviderStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


class GenerationProvider(Protocol):
    """Protocol for generative-AI backends (Kling, Veo, Imagen, Gemini image)."""

    name: str

    def is_configured(self) -> bool:
        """True when credentials for this provider are present."""
        ...

    async def submit(self, request: GenerationRequest) -> ProviderJob:
        """Translate ``request`` to the provider's wire format and start the job."""
        ...

    async def poll_status(self, job_id: str, task_type: str, model_name: str = "") -> ProviderStatus:
        """Fetch the provider's current view of a job, mapped to internal status."""
        ...

    def result_headers(self, url: str) -> dict[str, str]:
        """Headers needed to download a finished result from ``url``."""
        ...


async def retry_async(
    call: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    backoff_seconds: float = 1.0,
    sleep: Sleep = asyncio.sleep,
    label: str = "provider call",
) -> T:
    """Run ``call``; retry only TransientServiceError.

    Delay before retry ``n`` is ``n * backoff_seconds``. Other errors, and
    the transient error of the final attempt, propagate unchanged.
    """
    attempt = 1
    while True:
        try:
            return await call()
        except TransientServiceError as e:
            if attempt >= attempts:
                logger.error("%s failed after %d attempts: %s", label, attempt, e)
                raise
            delay = attempt * backoff_seconds
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.1fs", label, attempt, attempts, e, delay
            )
            await sleep(delay)
            attempt += 1
