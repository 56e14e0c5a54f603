"""Infrastructure generation for a company profile.

Asks Claude for a component topology that supports the profile's sector,
core functions and regulatory requirements, materializes it into entities,
and summarizes each entity as a SimulatedComponent on a refreshed copy of the
profile. Web applications also get an OpenAPI 3.0 stub. Every generative step
has a deterministic fallback.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Literal

from anthropic import AsyncAnthropic
from pydantic import BaseModel, Field

from infra_engine.core.config import Settings, get_settings
from infra_engine.core.connection_resolver import resolve_connections
from infra_engine.core.entity_materializer import EntityMaterializer, alnum_slug
from infra_engine.core.exceptions import InfraEngineError
from infra_engine.core.fallback_topology import fallback_openapi, fallback_profile_topology
from infra_engine.core.llm import call_tool_json, pydantic_tool, validate_output
from infra_engine.core.logging import current_request_id, get_logger, log_with_context
from infra_engine.core.schemas_infrastructure import (
    EntityType,
    InfrastructureEntity,
    ParsedTopology,
    RawConnection,
    RawParsedEntity,
)
from infra_engine.core.schemas_profile import CompanyProfile, SimulatedComponent, touch_profile

logger = get_logger(__name__)

ComponentType = Literal[
    "dns_server",
    "ntp_server",
    "web_app",
    "database",
    "firewall",
    "load_balancer",
    "social_agent",
    "api_service",
]


# =============================================================================
# Output schemas
# =============================================================================


class TopologyComponentOut(BaseModel):
    id: str = Field(..., min_length=1, description="Unique identifier for the component")
    type: ComponentType = Field(..., description="Component type")
    name: str = Field(..., min_length=1, description="Descriptive name for the component")
    description: str = Field(default="", description="Brief technical description")
    host_prefix: str = Field(default="host", description="Short identifier for hostname generation")


class TopologyConnectionOut(BaseModel):
    source: str = Field(..., description="Source component id")
    target: str = Field(..., description="Target component id")


class InfrastructureTopologyOut(BaseModel):
    components: list[TopologyComponentOut] = Field(..., min_length=1)
    connections: list[TopologyConnectionOut] = Field(default_factory=list)


class OpenApiInfoOut(BaseModel):
    title: str
    version: str
    description: str = ""


class OpenApiSpecOut(BaseModel):
    openapi: Literal["3.0.0"]
    info: OpenApiInfoOut
    paths: dict[str, Any] = Field(..., description="API endpoints")


# =============================================================================
# Prompts
# =============================================================================

TOPOLOGY_SYSTEM = """You are an infrastructure architect. Design realistic infrastructure
topologies that support company operations based on their sector and requirements.

Available component types: dns_server, ntp_server, web_app, database, firewall,
load_balancer, social_agent, api_service.

Connections reference component ids. Submit with the submit_topology tool."""

TOPOLOGY_USER = """## Company Profile
- Name: {name}
- Sector: {sector}
- Core Functions: {core_functions}
- Regulatory Requirements: {regulatory_requirements}
- Description: {description}"""

OPENAPI_SYSTEM = """You are an API architect. Generate simplified OpenAPI 3.0 specifications
with 3-5 essential endpoints based on the service requirements and company context.
Submit with the submit_openapi_spec tool."""

OPENAPI_USER = """## Service Details
- Service: {service_name}
- Description: {service_description}
- Company Sector: {sector}
- Core Functions: {core_functions}"""

TOPOLOGY_TOOL = pydantic_tool(
    name="submit_topology",
    description="Submit the infrastructure topology.",
    model=InfrastructureTopologyOut,
)
OPENAPI_TOOL = pydantic_tool(
    name="submit_openapi_spec",
    description="Submit the OpenAPI 3.0 specification.",
    model=OpenApiSpecOut,
)


@dataclass
class InfrastructureBuildResult:
    profile: CompanyProfile
    entities: list[InfrastructureEntity] = field(default_factory=list)
    used_fallback: bool = False


class InfrastructureBuilder:
    """Populates CompanyProfile.infrastructure from generated or default topologies."""

    def __init__(
        self,
        client: AsyncAnthropic | None,
        materializer: EntityMaterializer,
        settings: Settings | None = None,
    ):
        self.client = client
        self.materializer = materializer
        self.settings = settings or get_settings()

    async def build_infrastructure(self, profile: CompanyProfile) -> InfrastructureBuildResult:
        """
        Generate the profile's infrastructure.

        Args:
            profile: Company profile to build for

        Returns:
            InfrastructureBuildResult with a refreshed profile copy and its entities
        """
        request_id = current_request_id()
        used_fallback = False

        try:
            topology = await self.generate_topology(profile)
        except Exception as e:
            log_with_context(
                logger,
                logging.WARNING,
                "Topology generation failed, using fallback topology",
                request_id=request_id,
                company=profile.name,
                error=f"{type(e).__name__}: {e}",
            )
            topology = fallback_profile_topology(profile.name, profile.sector, self.settings.LOCAL_DOMAIN)
            used_fallback = True

        entities = self.materializer.materialize(topology.entities, profile.name)
        edges = resolve_connections(topology.connections, entities)

        components: list[SimulatedComponent] = []
        for entity in entities:
            openapi_stub = None
            if entity.type == EntityType.WEB_APP:
                if used_fallback:
                    spec = fallback_openapi(entity.name)
                else:
                    spec = await self.generate_openapi_stub(entity, profile)
                openapi_stub = json.dumps(spec, indent=2)

            components.append(
                SimulatedComponent(
                    id=entity.id,
                    type=entity.type.value,
                    fidelity=entity.fidelity,
                    description=entity.metadata.get("description") or f"{entity.name} component",
                    openapi_stub=openapi_stub,
                )
            )

        log_with_context(
            logger,
            logging.INFO,
            "Infrastructure built",
            request_id=request_id,
            company=profile.name,
            components=len(components),
            edges=edges,
            fallback=used_fallback,
        )

        return InfrastructureBuildResult(
            profile=touch_profile(profile, infrastructure=components),
            entities=entities,
            used_fallback=used_fallback,
        )

    async def generate_topology(self, profile: CompanyProfile) -> ParsedTopology:
        """
        Generate raw topology records for a profile.

        Raises:
            InfraEngineError: If no client is configured, the backend fails or output is invalid
        """
        if self.client is None:
            raise InfraEngineError("No generation client configured")

        start = time.time()
        data = await call_tool_json(
            self.client,
            model=self.settings.TOPOLOGY_MODEL,
            system=TOPOLOGY_SYSTEM,
            user_prompt=TOPOLOGY_USER.format(
                name=profile.name,
                sector=profile.sector,
                core_functions=", ".join(profile.core_functions),
                regulatory_requirements=", ".join(profile.regulatory_requirements),
                description=profile.description,
            ),
            tool=TOPOLOGY_TOOL,
            max_tokens=self.settings.TOPOLOGY_MAX_TOKENS,
            temperature=self.settings.PROFILE_TEMPERATURE,
            max_retries=self.settings.LLM_MAX_RETRIES,
            initial_delay=self.settings.LLM_RETRY_INITIAL_DELAY,
        )
        parsed = validate_output(data, InfrastructureTopologyOut)
        logger.info(
            f"Topology generated for {profile.name}: {len(parsed.components)} components, "
            f"{len(parsed.connections)} connections in {int((time.time() - start) * 1000)}ms"
        )
        return topology_from_output(parsed, profile.name, self.settings.LOCAL_DOMAIN)

    async def generate_openapi_stub(
        self, entity: InfrastructureEntity, profile: CompanyProfile
    ) -> dict[str, Any]:
        """Generate an OpenAPI document for a web app, or the default stub on failure."""
        if self.client is None:
            return fallback_openapi(entity.name)

        try:
            data = await call_tool_json(
                self.client,
                model=self.settings.TOPOLOGY_MODEL,
                system=OPENAPI_SYSTEM,
                user_prompt=OPENAPI_USER.format(
                    service_name=entity.name,
                    service_description=entity.metadata.get("description", ""),
                    sector=profile.sector,
                    core_functions=", ".join(profile.core_functions),
                ),
                tool=OPENAPI_TOOL,
                max_tokens=self.settings.TOPOLOGY_MAX_TOKENS,
                temperature=self.settings.PROFILE_TEMPERATURE,
                max_retries=self.settings.LLM_MAX_RETRIES,
                initial_delay=self.settings.LLM_RETRY_INITIAL_DELAY,
            )
            spec = validate_output(data, OpenApiSpecOut)
        except Exception as e:
            logger.warning(f"OpenAPI generation failed for {entity.name}: {e}")
            return fallback_openapi(entity.name)

        return spec.model_dump()


def topology_from_output(
    parsed: InfrastructureTopologyOut, company_name: str, domain: str = "local"
) -> ParsedTopology:
    """Turn generated components into raw records keyed by hostname."""
    slug = alnum_slug(company_name)
    hostnames: dict[str, str] = {}
    entities: list[RawParsedEntity] = []

    for component in parsed.components:
        hostname = f"{component.host_prefix or 'host'}-{component.id}.{slug}.{domain}"
        hostnames[component.id] = hostname
        entities.append(
            RawParsedEntity(
                type=component.type,
                name=component.name,
                hostname=hostname,
                metadata={"description": component.description},
            )
        )

    connections = [
        RawConnection(
            source=hostnames.get(conn.source, conn.source),
            target=hostnames.get(conn.target, conn.target),
        )
        for conn in parsed.connections
    ]
    return ParsedTopology(entities=entities, connections=connections)
