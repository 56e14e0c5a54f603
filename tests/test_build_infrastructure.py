"""Tests for InfrastructureBuilder with mocked Anthropic responses."""

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from infra_engine.chains.build_infrastructure import (
    InfrastructureBuilder,
    InfrastructureTopologyOut,
    topology_from_output,
)
from infra_engine.core.entity_materializer import EntityMaterializer
from infra_engine.core.schemas_infrastructure import EntityType
from infra_engine.core.schemas_profile import CompanyProfile


def _profile(sector: str = "Banking") -> CompanyProfile:
    stamp = datetime(2026, 1, 1, tzinfo=UTC)
    return CompanyProfile(
        id="profile-1",
        name="Acme Bank",
        description="A payment processing bank",
        sector=sector,
        core_functions=["Customer Management", "Payment Processing"],
        regulatory_requirements=["PCI-DSS"],
        created_at=stamp,
        updated_at=stamp,
    )


def _tool_response(payload: dict):
    response = MagicMock()
    response.content = [MagicMock(type="tool_use", input=payload)]
    return response


TOPOLOGY_PAYLOAD = {
    "components": [
        {"id": "1", "type": "web_app", "name": "Portal", "description": "Customer portal", "host_prefix": "portal"},
        {"id": "2", "type": "database", "name": "Core DB", "description": "Accounts", "host_prefix": "db"},
    ],
    "connections": [{"source": "1", "target": "2"}, {"source": "1", "target": "9"}],
}

OPENAPI_PAYLOAD = {
    "openapi": "3.0.0",
    "info": {"title": "Portal", "version": "1.0.0", "description": "Portal API"},
    "paths": {"/accounts": {"get": {"summary": "List accounts"}}},
}


class TestFallbackBuild:
    @pytest.mark.asyncio
    async def test_without_client_uses_default_topology(self, settings, identifiers, rng):
        builder = InfrastructureBuilder(
            client=None, materializer=EntityMaterializer(identifiers, rng=rng), settings=settings
        )
        profile = _profile()

        result = await builder.build_infrastructure(profile)

        assert result.used_fallback
        names = [e.name for e in result.entities]
        assert names == ["Acme Bank Website", "Acme Bank Database", "Acme Bank DNS Server", "Payment Gateway"]

        web, db, dns, _ = result.entities
        assert web.connections == [db.id, dns.id]

        components = result.profile.infrastructure
        assert [c.id for c in components] == [e.id for e in result.entities]
        assert components[0].type == "web_app"
        assert json.loads(components[0].openapi_stub)["paths"].keys() == {"/api/status", "/api/health"}
        assert components[1].openapi_stub is None
        assert components[1].description == "Primary database storing customer data"

    @pytest.mark.asyncio
    async def test_profile_copy_is_refreshed(self, settings, identifiers, rng):
        builder = InfrastructureBuilder(
            client=None, materializer=EntityMaterializer(identifiers, rng=rng), settings=settings
        )
        profile = _profile(sector="Retail")

        result = await builder.build_infrastructure(profile)

        assert profile.infrastructure == []
        assert result.profile.id == profile.id
        assert result.profile.created_at == profile.created_at
        assert result.profile.updated_at > profile.updated_at
        assert len(result.profile.infrastructure) == 3


class TestGeneratedBuild:
    @pytest.mark.asyncio
    async def test_generated_topology_and_openapi(self, settings, identifiers, rng):
        client = MagicMock()
        client.messages.create = AsyncMock(
            side_effect=[_tool_response(TOPOLOGY_PAYLOAD), _tool_response(OPENAPI_PAYLOAD)]
        )
        builder = InfrastructureBuilder(
            client=client, materializer=EntityMaterializer(identifiers, rng=rng), settings=settings
        )

        result = await builder.build_infrastructure(_profile())

        assert not result.used_fallback
        portal, core_db = result.entities
        assert portal.hostname == "portal-1.acmebank.local"
        assert core_db.type == EntityType.DATABASE
        assert portal.connections == [core_db.id]
        assert json.loads(result.profile.infrastructure[0].openapi_stub)["paths"] == OPENAPI_PAYLOAD["paths"]
        assert client.messages.create.await_count == 2

    @pytest.mark.asyncio
    async def test_invalid_openapi_falls_back_to_stub(self, settings, identifiers, rng):
        client = MagicMock()
        client.messages.create = AsyncMock(
            side_effect=[_tool_response(TOPOLOGY_PAYLOAD), _tool_response({"openapi": "2.0"})]
        )
        builder = InfrastructureBuilder(
            client=client, materializer=EntityMaterializer(identifiers, rng=rng), settings=settings
        )

        result = await builder.build_infrastructure(_profile())

        stub = json.loads(result.profile.infrastructure[0].openapi_stub)
        assert "/api/health" in stub["paths"]

    @pytest.mark.asyncio
    async def test_empty_component_list_falls_back(self, settings, identifiers, rng):
        client = MagicMock()
        client.messages.create = AsyncMock(return_value=_tool_response({"components": [], "connections": []}))
        builder = InfrastructureBuilder(
            client=client, materializer=EntityMaterializer(identifiers, rng=rng), settings=settings
        )

        result = await builder.build_infrastructure(_profile(sector="Technology"))

        assert result.used_fallback
        assert len(result.entities) == 3


def test_topology_from_output_maps_ids_to_hostnames():
    parsed = InfrastructureTopologyOut.model_validate(TOPOLOGY_PAYLOAD)

    topology = topology_from_output(parsed, "Acme Bank", "local")

    assert [e.hostname for e in topology.entities] == ["portal-1.acmebank.local", "db-2.acmebank.local"]
    assert [(c.source, c.target) for c in topology.connections] == [
        ("portal-1.acmebank.local", "db-2.acmebank.local"),
        ("portal-1.acmebank.local", "9"),
    ]
