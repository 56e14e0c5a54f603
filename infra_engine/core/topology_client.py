"""HTTP client for the topology-generation service."""

import asyncio
from typing import Any

import httpx
from pydantic import ValidationError

from infra_engine.core.config import Settings, get_settings
from infra_engine.core.exceptions import TopologyPayloadError, UpstreamUnavailableError
from infra_engine.core.logging import get_logger
from infra_engine.core.schemas_infrastructure import ParsedTopology

logger = get_logger(__name__)

PARSE_ACTION = "parseInfrastructure"


class TopologyRequestor:
    """Sends infrastructure descriptions to the topology service.

    Owns one ``httpx.AsyncClient`` for its lifetime unless a client is
    injected. Use as an async context manager or call ``aclose()``.
    """

    def __init__(self, client: httpx.AsyncClient | None = None, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=self.settings.TOPOLOGY_TIMEOUT)

    async def __aenter__(self) -> "TopologyRequestor":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def request_topology(self, description: str) -> ParsedTopology:
        """
        Parse a free-text infrastructure description into raw records.

        Args:
            description: Infrastructure description to parse

        Returns:
            ParsedTopology with raw entities and connections

        Raises:
            UpstreamUnavailableError: Transport failure or non-success status
            TopologyPayloadError: Response body is malformed
        """
        response = await self._post_with_retry({"action": PARSE_ACTION, "description": description})

        try:
            body = response.json()
        except ValueError as e:
            raise TopologyPayloadError(f"Topology response is not JSON: {e}") from e

        return parse_topology_body(body)

    async def _post_with_retry(self, payload: dict[str, Any]) -> httpx.Response:
        url = self.settings.TOPOLOGY_SERVICE_URL
        max_retries = self.settings.TOPOLOGY_MAX_RETRIES

        for attempt in range(max_retries + 1):
            try:
                response = await self.client.post(url, json=payload)
            except httpx.TransportError as e:
                if attempt < max_retries:
                    await self._backoff(attempt, max_retries, type(e).__name__)
                    continue
                raise UpstreamUnavailableError(str(e), backend="topology") from e

            if response.status_code >= 500 and attempt < max_retries:
                await self._backoff(attempt, max_retries, f"HTTP {response.status_code}")
                continue

            if response.is_error:
                raise UpstreamUnavailableError(
                    f"Topology service returned HTTP {response.status_code}",
                    backend="topology",
                    status_code=response.status_code,
                )
            return response

        raise UpstreamUnavailableError("Retries exhausted", backend="topology")

    async def _backoff(self, attempt: int, max_retries: int, reason: str) -> None:
        delay = self.settings.TOPOLOGY_RETRY_INITIAL_DELAY * (2**attempt)
        logger.warning(
            f"Topology request attempt {attempt + 1}/{max_retries + 1} failed "
            f"({reason}), retrying in {delay}s"
        )
        await asyncio.sleep(delay)


def parse_topology_body(body: Any) -> ParsedTopology:
    """Validate a topology response body.

    Accepts the ``{"success": true, "parsed": {...}}`` envelope or a bare
    ``{"entities": [...], "connections": [...]}`` object.
    """
    if not isinstance(body, dict):
        raise TopologyPayloadError(f"Expected JSON object, got {type(body).__name__}")

    if "success" in body:
        if not body.get("success"):
            raise UpstreamUnavailableError(
                body.get("error") or "Infrastructure parsing failed", backend="topology"
            )
        body = body.get("parsed")
        if not isinstance(body, dict):
            raise TopologyPayloadError("Topology envelope has no parsed object")

    if "entities" not in body:
        raise TopologyPayloadError("Topology payload has no entities list")

    try:
        topology = ParsedTopology.model_validate(body)
    except ValidationError as e:
        raise TopologyPayloadError(f"Topology payload failed validation: {e.error_count()} error(s)") from e

    # Connections missing either end are dropped here
    topology.connections = [c for c in topology.connections if c.source and c.target]
    return topology
