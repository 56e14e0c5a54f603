"""Pydantic schemas for company profiles."""

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field

from infra_engine.core.schemas_infrastructure import FidelityLevel


def utc_now() -> datetime:
    return datetime.now(UTC)


class SimulatedComponent(BaseModel):
    """Summary of one infrastructure entity attached to a profile."""

    id: str
    type: str  # EntityType value, e.g. "web_app"
    fidelity: FidelityLevel = FidelityLevel.VIRTUAL
    description: str = ""
    openapi_stub: str | None = None  # JSON-encoded OpenAPI 3.0 document


class CompanyProfile(BaseModel):
    """Structured description of an organization."""

    id: str = Field(..., frozen=True)
    name: str
    description: str
    sector: str
    core_functions: list[str] = Field(default_factory=list)
    regulatory_requirements: list[str] = Field(default_factory=list)
    infrastructure: list[SimulatedComponent] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now, frozen=True)
    updated_at: datetime = Field(default_factory=utc_now)
    source: Literal["generated", "fallback"] = "generated"


class CompanyProfileOut(BaseModel):
    """Output schema the generative backend must satisfy."""

    name: str = Field(..., min_length=1, description="Company name (inferred if not explicitly stated)")
    sector: str = Field(
        ...,
        min_length=1,
        description="Business sector (e.g. Banking, Healthcare, Social Media, Technology)",
    )
    core_functions: list[str] = Field(
        ...,
        min_length=3,
        max_length=6,
        description="Core services or functions the company provides",
    )
    regulatory_requirements: list[str] = Field(
        ...,
        min_length=1,
        description="Applicable regulatory frameworks (e.g. GDPR, PCI-DSS, HIPAA)",
    )


def touch_profile(profile: CompanyProfile, **changes) -> CompanyProfile:
    """Return a copy of ``profile`` with ``changes`` applied and updated_at refreshed.

    updated_at never moves backwards, even if the wall clock does.
    """
    now = utc_now()
    updated_at = now if now >= profile.updated_at else profile.updated_at
    return profile.model_copy(update={**changes, "updated_at": updated_at})
