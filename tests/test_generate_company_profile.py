"""Tests for company profile generation.

Uses mocked Anthropic responses; no network access.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from anthropic import APIConnectionError

from infra_engine.chains.generate_company_profile import (
    GeneratedProfile,
    GenerationFailure,
    ProfileGenerator,
)
from infra_engine.core.exceptions import InvalidInputError


# =============================================================================
# Helpers
# =============================================================================


def _tool_response(payload: dict):
    """Mock Anthropic response carrying a tool_use block."""
    block = MagicMock(type="tool_use", input=payload)
    response = MagicMock()
    response.content = [block]
    return response


def _text_response(text: str):
    block = MagicMock(type="text", text=text)
    response = MagicMock()
    response.content = [block]
    return response


def _client(**create_kwargs):
    client = MagicMock()
    client.messages.create = AsyncMock(**create_kwargs)
    return client


VALID_PAYLOAD = {
    "name": "Northwind Payments",
    "sector": "Banking",
    "core_functions": ["Payment Processing", "Fraud Detection", "Customer Onboarding"],
    "regulatory_requirements": ["PCI-DSS", "SOX", "PCI-DSS"],
}


# =============================================================================
# Generative path
# =============================================================================


class TestGeneratedProfile:
    @pytest.mark.asyncio
    async def test_builds_profile_from_tool_output(self, settings, identifiers):
        client = _client(return_value=_tool_response(VALID_PAYLOAD))
        generator = ProfileGenerator(client=client, identifiers=identifiers, settings=settings)

        profile = await generator.generate_company_profile("A card payment processor")

        assert profile.id == "id-0001"
        assert profile.name == "Northwind Payments"
        assert profile.sector == "Banking"
        assert profile.core_functions == VALID_PAYLOAD["core_functions"]
        assert profile.regulatory_requirements == ["PCI-DSS", "SOX"]
        assert profile.infrastructure == []
        assert profile.created_at == profile.updated_at
        assert profile.source == "generated"

        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["tool_choice"] == {"type": "tool", "name": "submit_company_profile"}
        assert "A card payment processor" in kwargs["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_name_override_wins(self, settings, identifiers):
        client = _client(return_value=_tool_response(VALID_PAYLOAD))
        generator = ProfileGenerator(client=client, identifiers=identifiers, settings=settings)

        profile = await generator.generate_company_profile("A card payment processor", name="Acme")

        assert profile.name == "Acme"

    @pytest.mark.asyncio
    async def test_accepts_fenced_json_text(self, settings, identifiers):
        text = "```json\n" + json.dumps(VALID_PAYLOAD) + "\n```"
        client = _client(return_value=_text_response(text))
        generator = ProfileGenerator(client=client, identifiers=identifiers, settings=settings)

        profile = await generator.generate_company_profile("A card payment processor")

        assert profile.source == "generated"
        assert profile.name == "Northwind Payments"


class TestGeneratedProfileBounds:
    """Whatever the backend returns, the profile keeps its required lists populated."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides, source",
        [
            ({"regulatory_requirements": []}, "fallback"),
            ({"core_functions": ["Payments", "Lending"]}, "fallback"),
            ({"core_functions": [f"F{i}" for i in range(7)]}, "fallback"),
            ({"core_functions": [f"F{i}" for i in range(3)]}, "generated"),
            ({"core_functions": [f"F{i}" for i in range(6)]}, "generated"),
        ],
    )
    async def test_lists_never_empty(self, settings, identifiers, overrides, source):
        client = _client(return_value=_tool_response(dict(VALID_PAYLOAD, **overrides)))
        generator = ProfileGenerator(client=client, identifiers=identifiers, settings=settings)

        profile = await generator.generate_company_profile("A payment processing bank")

        assert profile.source == source
        assert len(profile.core_functions) >= 1
        assert profile.regulatory_requirements

    @pytest.mark.asyncio
    async def test_empty_regulatory_list_is_a_violation(self, settings, identifiers):
        payload = dict(VALID_PAYLOAD, regulatory_requirements=[])
        client = _client(return_value=_tool_response(payload))
        generator = ProfileGenerator(client=client, identifiers=identifiers, settings=settings)

        result = await generator.extract("A bank")
        profile = await generator.generate_company_profile("A bank")

        assert isinstance(result, GenerationFailure)
        assert result.kind == "schema_violation"
        assert profile.sector == "Banking"
        assert profile.regulatory_requirements[:3] == ["PCI-DSS", "SOX", "Basel III"]


# =============================================================================
# Fallback path
# =============================================================================


class TestFallbackProfile:
    @pytest.mark.asyncio
    async def test_schema_violation_uses_rules(self, settings, identifiers):
        payload = dict(VALID_PAYLOAD, core_functions=["Only one", "Two"])
        client = _client(return_value=_tool_response(payload))
        generator = ProfileGenerator(client=client, identifiers=identifiers, settings=settings)

        profile = await generator.generate_company_profile("A payment processing bank")

        assert profile.source == "fallback"
        assert profile.sector == "Banking"
        assert {"PCI-DSS", "SOX", "Basel III"} <= set(profile.regulatory_requirements)
        assert profile.name == "Company-id-0001"

    @pytest.mark.asyncio
    async def test_too_many_core_functions_is_a_violation(self, settings, identifiers):
        payload = dict(VALID_PAYLOAD, core_functions=[f"F{i}" for i in range(7)])
        client = _client(return_value=_tool_response(payload))
        generator = ProfileGenerator(client=client, identifiers=identifiers, settings=settings)

        result = await generator.extract("A bakery")

        assert isinstance(result, GenerationFailure)
        assert result.kind == "schema_violation"
        assert result.errors

    @pytest.mark.asyncio
    async def test_unexpected_error_uses_rules(self, settings, identifiers):
        client = _client(side_effect=Exception("API down"))
        generator = ProfileGenerator(client=client, identifiers=identifiers, settings=settings)

        profile = await generator.generate_company_profile("Hospital patient portal", name="St Mary")

        assert profile.source == "fallback"
        assert profile.name == "St Mary"
        assert profile.sector == "Healthcare"
        assert profile.regulatory_requirements[:3] == ["HIPAA", "FDA", "GDPR"]

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried_then_fall_back(self, settings, identifiers):
        error = APIConnectionError(request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"))
        client = _client(side_effect=error)
        generator = ProfileGenerator(client=client, identifiers=identifiers, settings=settings)

        result = await generator.extract("Logistics platform")

        assert isinstance(result, GenerationFailure)
        assert result.kind == "upstream_unavailable"
        assert client.messages.create.await_count == settings.LLM_MAX_RETRIES + 1

    @pytest.mark.asyncio
    async def test_no_client_uses_rules(self, settings, identifiers):
        generator = ProfileGenerator(client=None, identifiers=identifiers, settings=settings)

        result = await generator.extract("anything")
        profile = await generator.generate_company_profile("Online shop with customer data")

        assert isinstance(result, GenerationFailure)
        assert result.kind == "not_configured"
        assert profile.sector == "Retail"
        assert profile.core_functions == ["Customer Management", "Data Management"]
        assert profile.regulatory_requirements == ["GDPR", "CCPA"]


class TestInvalidInput:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("description", ["", "   ", None])
    async def test_empty_description_raises(self, settings, identifiers, description):
        client = _client(return_value=_tool_response(VALID_PAYLOAD))
        generator = ProfileGenerator(client=client, identifiers=identifiers, settings=settings)

        with pytest.raises(InvalidInputError):
            await generator.generate_company_profile(description)

        client.messages.create.assert_not_called()


@pytest.mark.asyncio
async def test_extract_tags_success(settings, identifiers):
    client = _client(return_value=_tool_response(VALID_PAYLOAD))
    generator = ProfileGenerator(client=client, identifiers=identifiers, settings=settings)

    result = await generator.extract("A card payment processor")

    assert isinstance(result, GeneratedProfile)
    assert result.payload.sector == "Banking"
