"""Resolution of textual connection endpoints onto materialized entities."""

from infra_engine.core.logging import get_logger
from infra_engine.core.schemas_infrastructure import InfrastructureEntity, RawConnection

logger = get_logger(__name__)


def find_entity(reference: str, entities: list[InfrastructureEntity]) -> InfrastructureEntity | None:
    """Exact hostname match first, then exact name match."""
    if not reference:
        return None
    for entity in entities:
        if entity.hostname == reference:
            return entity
    for entity in entities:
        if entity.name == reference:
            return entity
    return None


def resolve_connections(
    connections: list[RawConnection], entities: list[InfrastructureEntity]
) -> int:
    """
    Add a directed edge source -> target for every connection whose ends both resolve.

    Edges are stored on the source entity's ``connections`` list. Connections
    with an unresolved end are dropped without error.

    Args:
        connections: Raw connections referencing names or hostnames
        entities: Entities of the same materialization batch (mutated)

    Returns:
        Number of edges added
    """
    added = 0
    for connection in connections:
        source = find_entity(connection.source, entities)
        target = find_entity(connection.target, entities)

        if source is None or target is None:
            logger.debug(
                f"Dropping unresolved connection {connection.source!r} -> {connection.target!r}"
            )
            continue

        if target.id in source.connections:
            continue

        source.connections.append(target.id)
        added += 1

    return added
