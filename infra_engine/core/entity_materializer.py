"""Materialization of raw topology records into infrastructure entities."""

import random
import re

from infra_engine.core.config import get_settings
from infra_engine.core.identifiers import IdentifierService
from infra_engine.core.logging import get_logger
from infra_engine.core.schemas_infrastructure import (
    FidelityLevel,
    InfrastructureEntity,
    Position,
    RawParsedEntity,
    map_entity_type,
)

logger = get_logger(__name__)

# Canvas bounds for randomized placement: x in [200, 600), y in [200, 500)
CANVAS_ORIGIN = (200.0, 200.0)
CANVAS_SPAN = (400.0, 300.0)


def name_slug(name: str) -> str:
    """Lowercase the name and drop all whitespace ("Acme Bank" -> "acmebank")."""
    return re.sub(r"\s+", "", name.lower())


def alnum_slug(name: str) -> str:
    """Lowercase the name and keep only [a-z0-9] ("Acme-Bank Ltd." -> "acmebankltd")."""
    return re.sub(r"[^a-z0-9]", "", name.lower())


class EntityMaterializer:
    """Fills in every field a raw record leaves out.

    Addresses and positions come from ``rng``; pass ``random.Random(seed)``
    for reproducible layouts.
    """

    def __init__(
        self,
        identifiers: IdentifierService,
        rng: random.Random | None = None,
        domain: str | None = None,
    ):
        self.identifiers = identifiers
        self.rng = rng or random.Random()
        self.domain = domain or get_settings().LOCAL_DOMAIN

    def materialize(
        self, records: list[RawParsedEntity], parent_name: str
    ) -> list[InfrastructureEntity]:
        """
        Convert raw records into unlinked entities namespaced under the parent.

        Args:
            records: Raw records from the topology service
            parent_name: Name of the owning organization

        Returns:
            Entities with fresh ids, virtual fidelity and empty connections
        """
        slug = name_slug(parent_name)
        entities = [self._materialize_one(record, index, slug) for index, record in enumerate(records)]
        logger.debug(f"Materialized {len(entities)} entities under {parent_name!r}")
        return entities

    def _materialize_one(self, record: RawParsedEntity, index: int, slug: str) -> InfrastructureEntity:
        return InfrastructureEntity(
            id=self.identifiers.issue(),
            type=map_entity_type(record.type),
            name=record.name or f"Component {index + 1}",
            hostname=record.hostname or f"comp{index + 1}.{slug}.{self.domain}",
            ip=self.random_private_ip(),
            fidelity=FidelityLevel.VIRTUAL,
            ports=[port.model_copy() for port in record.ports or []],
            metadata=dict(record.metadata or {}),
            position=self.random_position(),
            connections=[],
            logs=[],
        )

    def random_private_ip(self) -> str:
        return f"10.0.{self.rng.randint(0, 255)}.{self.rng.randint(0, 255)}"

    def random_position(self) -> Position:
        return Position(
            x=CANVAS_ORIGIN[0] + self.rng.random() * CANVAS_SPAN[0],
            y=CANVAS_ORIGIN[1] + self.rng.random() * CANVAS_SPAN[1],
        )
