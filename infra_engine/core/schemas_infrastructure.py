"""Pydantic schemas for infrastructure entities and raw topology records."""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EntityType(str, Enum):
    """Kinds of node in the infrastructure graph."""

    DNS_SERVER = "dns_server"
    NTP_SERVER = "ntp_server"
    WEB_APP = "web_app"
    DATABASE = "database"
    FIREWALL = "firewall"
    LOAD_BALANCER = "load_balancer"
    SOCIAL_AGENT = "social_agent"
    API_SERVICE = "api_service"
    ORGANIZATION = "organization"


class FidelityLevel(str, Enum):
    """Simulation realism tier. The pipeline only emits VIRTUAL."""

    VIRTUAL = "virtual"
    SEMI_REAL = "semi_real"
    CONCRETE = "concrete"


_ENTITY_TYPE_ALIASES: dict[str, EntityType] = {
    "rest_api": EntityType.API_SERVICE,
    "api": EntityType.API_SERVICE,
}


def map_entity_type(value: str | EntityType | None) -> EntityType:
    """Map a loosely formatted type string onto EntityType (unknown -> web_app)."""
    if isinstance(value, EntityType):
        return value
    if not value:
        return EntityType.WEB_APP

    key = value.strip().lower().replace(" ", "_").replace("-", "_")
    if key in _ENTITY_TYPE_ALIASES:
        return _ENTITY_TYPE_ALIASES[key]
    try:
        return EntityType(key)
    except ValueError:
        return EntityType.WEB_APP


class Port(BaseModel):
    """A network port exposed by an entity."""

    number: int = Field(..., ge=0, le=65535)
    protocol: Literal["tcp", "udp"] = "tcp"
    service: str = ""
    status: Literal["open", "closed", "filtered"] = "open"

    @field_validator("protocol", "status", mode="before")
    @classmethod
    def _lowercase(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value


class Position(BaseModel):
    """2D layout coordinate on the simulation canvas."""

    x: float
    y: float


class InfrastructureEntity(BaseModel):
    """A fully specified node in the infrastructure graph.

    ``metadata`` is an open map. Organization entities keep their expanded
    children under ``metadata["internal_entities"]``.
    """

    id: str = Field(..., frozen=True)
    type: EntityType
    name: str
    hostname: str
    ip: str
    fidelity: FidelityLevel = FidelityLevel.VIRTUAL
    ports: list[Port] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    position: Position
    connections: list[str] = Field(default_factory=list)  # target entity ids
    logs: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def internal_entities(self) -> list["InfrastructureEntity"]:
        return self.metadata.get("internal_entities") or []


class RawParsedEntity(BaseModel):
    """Loosely structured entity record as returned by the topology service."""

    model_config = ConfigDict(extra="ignore")

    type: str | None = None
    name: str | None = None
    hostname: str | None = None
    ports: list[Port] | None = None
    metadata: dict[str, Any] | None = None


class RawConnection(BaseModel):
    """Connection between two entities, referenced by name or hostname."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    source: str = Field(default="", alias="from")
    target: str = Field(default="", alias="to")

    @field_validator("source", "target", mode="before")
    @classmethod
    def _blank_non_string(cls, value: Any) -> Any:
        # null or numeric endpoints cannot name an entity; the connection is dropped later
        return value if isinstance(value, str) else ""


class ParsedTopology(BaseModel):
    """Raw topology payload: entities plus textual connections."""

    model_config = ConfigDict(extra="ignore")

    entities: list[RawParsedEntity] = Field(default_factory=list)
    connections: list[RawConnection] = Field(default_factory=list)
