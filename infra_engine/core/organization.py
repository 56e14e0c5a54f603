"""Root organization entities built from company profiles."""

from infra_engine.core.config import get_settings
from infra_engine.core.entity_materializer import alnum_slug
from infra_engine.core.identifiers import IdentifierService
from infra_engine.core.schemas_infrastructure import (
    EntityType,
    FidelityLevel,
    InfrastructureEntity,
    Position,
)
from infra_engine.core.schemas_profile import CompanyProfile

ORGANIZATION_IP = "192.168.1.1"
ORGANIZATION_POSITION = (400, 300)


def organization_from_profile(
    profile: CompanyProfile,
    identifiers: IdentifierService,
    domain: str | None = None,
) -> InfrastructureEntity:
    """Build the top-level ORGANIZATION entity for a profile, with an empty child cache."""
    domain = domain or get_settings().LOCAL_DOMAIN
    return InfrastructureEntity(
        id=identifiers.issue(),
        type=EntityType.ORGANIZATION,
        name=profile.name,
        hostname=f"{alnum_slug(profile.name)}.{domain}",
        ip=ORGANIZATION_IP,
        fidelity=FidelityLevel.VIRTUAL,
        ports=[],
        metadata={
            "description": profile.description,
            "core_functions": list(profile.core_functions),
            "compliance": list(profile.regulatory_requirements),
            "sector": profile.sector,
            "profile_id": profile.id,
            "internal_entities": [],
        },
        position=Position(x=ORGANIZATION_POSITION[0], y=ORGANIZATION_POSITION[1]),
    )
