"""Advisory text analysis client used to enrich submit responses.

Results are informational only: they are never persisted and never influence
a status transition.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx

from proposal_lifecycle.core.config import settings
from proposal_lifecycle.core.logging import get_logger

if TYPE_CHECKING:
    from proposal_lifecycle.models.proposal_versions import ProposalVersion

logger = get_logger(__name__)

CHECK_PATH = "/api/v1/predict/proposal-check"


class AdvisoryError(Exception):
    """Advisory analysis could not be produced."""


class AdvisoryClient:
    def __init__(
        self,
        base_url: str | None = None,
        *,
        api_key: str | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = (
            base_url if base_url is not None else settings.advisory_service_url
        ).rstrip("/")
        self._api_key = api_key if api_key is not None else settings.advisory_api_key
        self._timeout = timeout_seconds or settings.advisory_timeout_seconds
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self._base_url)

    async def check_proposal(self, version: ProposalVersion) -> dict[str, Any]:
        if not self.enabled:
            raise AdvisoryError("Advisory service is not configured")
        body = {
            "title": version.title,
            "abstract": version.abstract,
            "problem_statement": version.problem_statement,
            "objectives": version.objectives,
            "methodology": version.methodology,
            "expected_outcomes": version.expected_outcomes,
        }
        headers = {"X-API-Key": self._api_key} if self._api_key else {}
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(CHECK_PATH, json=body, headers=headers)
                response.raise_for_status()
                result = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(
                "advisory.check.failed",
                extra={"version_id": str(version.id), "error_type": type(exc).__name__},
            )
            raise AdvisoryError("Advisory analysis is unavailable") from exc
        if not isinstance(result, dict):
            raise AdvisoryError("Advisory service returned an unexpected payload")
        return result
