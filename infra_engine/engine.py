"""Engine wiring.

Constructs every service once and exposes the public operations:
profile generation, infrastructure building, organization creation and
organization expansion.
"""

import random

import httpx

from infra_engine.chains.build_infrastructure import InfrastructureBuildResult, InfrastructureBuilder
from infra_engine.chains.generate_company_profile import ProfileGenerator
from infra_engine.core.config import Settings, get_settings
from infra_engine.core.entity_materializer import EntityMaterializer
from infra_engine.core.fallback_topology import FallbackTopologyProvider
from infra_engine.core.identifiers import IdentifierService
from infra_engine.core.llm import build_anthropic_client
from infra_engine.core.logging import request_context
from infra_engine.core.organization import organization_from_profile
from infra_engine.core.schemas_infrastructure import InfrastructureEntity
from infra_engine.core.schemas_profile import CompanyProfile
from infra_engine.core.topology_client import TopologyRequestor
from infra_engine.graphs.expand_organization_graph import ExpansionCoordinator, ExpansionResult


class InfraEngine:
    """Facade over the generation and expansion pipeline."""

    def __init__(
        self,
        generator: ProfileGenerator,
        builder: InfrastructureBuilder,
        coordinator: ExpansionCoordinator,
        identifiers: IdentifierService,
        requestor: TopologyRequestor,
        settings: Settings,
    ):
        self.generator = generator
        self.builder = builder
        self.coordinator = coordinator
        self.identifiers = identifiers
        self.requestor = requestor
        self.settings = settings

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        rng: random.Random | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> "InfraEngine":
        """Build an engine; pass ``rng`` for reproducible layouts."""
        settings = settings or get_settings()
        identifiers = IdentifierService()
        client = build_anthropic_client(settings)
        materializer = EntityMaterializer(identifiers, rng=rng, domain=settings.LOCAL_DOMAIN)
        requestor = TopologyRequestor(client=http_client, settings=settings)

        return cls(
            generator=ProfileGenerator(client=client, identifiers=identifiers, settings=settings),
            builder=InfrastructureBuilder(client=client, materializer=materializer, settings=settings),
            coordinator=ExpansionCoordinator(
                requestor=requestor,
                materializer=materializer,
                fallback=FallbackTopologyProvider(identifiers, domain=settings.LOCAL_DOMAIN),
            ),
            identifiers=identifiers,
            requestor=requestor,
            settings=settings,
        )

    async def __aenter__(self) -> "InfraEngine":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.requestor.aclose()

    async def generate_company_profile(self, description: str, name: str | None = None) -> CompanyProfile:
        with request_context():
            return await self.generator.generate_company_profile(description, name)

    async def build_infrastructure(self, profile: CompanyProfile) -> InfrastructureBuildResult:
        with request_context():
            return await self.builder.build_infrastructure(profile)

    def create_organization(self, profile: CompanyProfile) -> InfrastructureEntity:
        return organization_from_profile(profile, self.identifiers, domain=self.settings.LOCAL_DOMAIN)

    async def expand_organization(self, entity: InfrastructureEntity) -> ExpansionResult:
        return await self.coordinator.expand_organization(entity)

    def close_expansion(self) -> None:
        self.coordinator.close_expansion()

    @property
    def is_expanding(self) -> bool:
        return self.coordinator.is_expanding

    @property
    def expanded_entity(self) -> InfrastructureEntity | None:
        return self.coordinator.expanded_entity
