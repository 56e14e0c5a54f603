"""Organization expansion graph.

LangGraph workflow that expands an ORGANIZATION entity into its internal
components:
1. Check the entity's internal_entities cache
2. Request a topology for a synthesized description
3. Materialize raw records into entities
4. Resolve textual connections into edges
5. Attach the children to the entity's metadata

Any failure in steps 2-3 routes to the fallback node, which attaches the
default three-component topology instead.
"""

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from langgraph.graph import END, StateGraph

from infra_engine.core.connection_resolver import resolve_connections
from infra_engine.core.entity_materializer import EntityMaterializer
from infra_engine.core.exceptions import TopologyPayloadError
from infra_engine.core.fallback_topology import FallbackTopologyProvider
from infra_engine.core.logging import get_logger, log_with_context, request_context
from infra_engine.core.schemas_infrastructure import (
    EntityType,
    InfrastructureEntity,
    ParsedTopology,
)
from infra_engine.core.topology_client import TopologyRequestor

logger = get_logger(__name__)

DEFAULT_CORE_FUNCTIONS = "General business operations"
DEFAULT_DESCRIPTION = "Technology organization"

# Oldest outcomes are forgotten beyond this many entities
MAX_TRACKED_OUTCOMES = 1024

EXPANSION_PROMPT = """Generate detailed internal infrastructure for {name}.
Core functions: {core_functions}
Description: {description}

Create specific components like web applications, databases, API services, load balancers, etc."""


class ExpansionStatus(str, Enum):
    """Per-entity expansion state. SATISFIED and FAILED return to IDLE once recorded."""

    IDLE = "idle"
    EXPANDING = "expanding"
    SATISFIED = "satisfied"
    FAILED = "failed"


class ExpansionOutcome(str, Enum):
    SKIPPED = "skipped"  # not an organization
    SATISFIED = "satisfied"
    FAILED = "failed"  # fallback children attached


@dataclass
class ExpansionResult:
    """Patch describing what an expansion attached to the entity."""

    entity_id: str
    outcome: ExpansionOutcome
    children: list[InfrastructureEntity] = field(default_factory=list)
    cache_hit: bool = False
    edges_added: int = 0
    error: str | None = None


@dataclass
class ExpandOrganizationState:
    """State for the organization expansion graph."""

    # Input
    entity: InfrastructureEntity
    request_id: str

    # Processing state
    cache_hit: bool = False
    description: str = ""
    topology: ParsedTopology | None = None
    children: list[InfrastructureEntity] = field(default_factory=list)
    edges_added: int = 0
    error: str | None = None

    # Output
    status: ExpansionStatus = ExpansionStatus.EXPANDING


def build_expansion_description(entity: InfrastructureEntity) -> str:
    """Describe the organization for the topology service."""
    core_functions = entity.metadata.get("core_functions") or []
    return EXPANSION_PROMPT.format(
        name=entity.name,
        core_functions=", ".join(core_functions) or DEFAULT_CORE_FUNCTIONS,
        description=entity.metadata.get("description") or DEFAULT_DESCRIPTION,
    )


class ExpansionCoordinator:
    """Expands organization entities in place, at most once per entity.

    An asyncio lock per entity id serializes overlapping calls: the second
    caller waits and then hits the cache filled by the first.
    """

    def __init__(
        self,
        requestor: TopologyRequestor,
        materializer: EntityMaterializer,
        fallback: FallbackTopologyProvider,
    ):
        self.requestor = requestor
        self.materializer = materializer
        self.fallback = fallback

        # Lock entries live only while some caller holds or awaits them
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._status: dict[str, ExpansionStatus] = {}
        self._last_outcome: OrderedDict[str, ExpansionOutcome] = OrderedDict()
        self._in_flight = 0
        self.expanded_entity: InfrastructureEntity | None = None

        self._graph = self._build_graph().compile()

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def is_expanding(self) -> bool:
        return self._in_flight > 0

    def status(self, entity_id: str) -> ExpansionStatus:
        return self._status.get(entity_id, ExpansionStatus.IDLE)

    def last_outcome(self, entity_id: str) -> ExpansionOutcome | None:
        return self._last_outcome.get(entity_id)

    def close_expansion(self) -> None:
        """Forget which entity is currently shown as expanded."""
        self.expanded_entity = None

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def expand_organization(self, entity: InfrastructureEntity) -> ExpansionResult:
        """
        Populate ``entity.metadata["internal_entities"]`` if it is not already.

        Args:
            entity: Entity to expand (mutated in place)

        Returns:
            ExpansionResult describing the attached children
        """
        if entity.type != EntityType.ORGANIZATION:
            return ExpansionResult(entity_id=entity.id, outcome=ExpansionOutcome.SKIPPED)

        lock = self._locks.setdefault(entity.id, asyncio.Lock())
        self._lock_users[entity.id] = self._lock_users.get(entity.id, 0) + 1
        self.expanded_entity = entity
        self._in_flight += 1
        try:
            async with lock:
                self._status[entity.id] = ExpansionStatus.EXPANDING
                with request_context() as request_id:
                    final = await self._graph.ainvoke(
                        ExpandOrganizationState(entity=entity, request_id=request_id)
                    )
        finally:
            self._in_flight -= 1
            # Idle is the default; only in-progress entities are tracked
            self._status.pop(entity.id, None)
            self._release_lock(entity.id)

        # LangGraph returns the final state as a dict
        status = final.get("status", ExpansionStatus.SATISFIED)
        outcome = ExpansionOutcome.FAILED if status == ExpansionStatus.FAILED else ExpansionOutcome.SATISFIED
        self._record_outcome(entity.id, outcome)

        return ExpansionResult(
            entity_id=entity.id,
            outcome=outcome,
            children=entity.internal_entities,
            cache_hit=final.get("cache_hit", False),
            edges_added=final.get("edges_added", 0),
            error=final.get("error"),
        )

    def _release_lock(self, entity_id: str) -> None:
        remaining = self._lock_users[entity_id] - 1
        if remaining:
            self._lock_users[entity_id] = remaining
        else:
            del self._lock_users[entity_id]
            del self._locks[entity_id]

    def _record_outcome(self, entity_id: str, outcome: ExpansionOutcome) -> None:
        self._last_outcome[entity_id] = outcome
        self._last_outcome.move_to_end(entity_id)
        while len(self._last_outcome) > MAX_TRACKED_OUTCOMES:
            self._last_outcome.popitem(last=False)

    # ------------------------------------------------------------------
    # Graph nodes
    # ------------------------------------------------------------------

    async def check_cache(self, state: ExpandOrganizationState) -> dict[str, Any]:
        """Skip generation when children are already attached."""
        cached = state.entity.internal_entities
        if cached:
            log_with_context(
                logger,
                logging.INFO,
                "Using cached internal entities",
                request_id=state.request_id,
                entity=state.entity.name,
                cached_count=len(cached),
            )
            return {"cache_hit": True, "status": ExpansionStatus.SATISFIED}

        log_with_context(
            logger,
            logging.INFO,
            "Entity expansion started",
            request_id=state.request_id,
            entity=state.entity.name,
        )
        return {"description": build_expansion_description(state.entity)}

    async def request_topology(self, state: ExpandOrganizationState) -> dict[str, Any]:
        """Ask the topology service for the organization's components."""
        try:
            topology = await self.requestor.request_topology(state.description)
            if not topology.entities:
                raise TopologyPayloadError("Topology service returned zero entities")
        except Exception as e:
            log_with_context(
                logger,
                logging.WARNING,
                "Topology request failed",
                request_id=state.request_id,
                entity=state.entity.name,
                error=f"{type(e).__name__}: {e}",
            )
            return {"error": f"{type(e).__name__}: {e}"}

        log_with_context(
            logger,
            logging.INFO,
            "Topology received",
            request_id=state.request_id,
            entities=len(topology.entities),
            connections=len(topology.connections),
        )
        return {"topology": topology}

    async def materialize(self, state: ExpandOrganizationState) -> dict[str, Any]:
        try:
            children = self.materializer.materialize(state.topology.entities, state.entity.name)
        except Exception as e:
            logger.error(f"Materialization failed for {state.entity.name}: {e}", exc_info=True)
            return {"error": f"{type(e).__name__}: {e}"}
        return {"children": children}

    async def resolve(self, state: ExpandOrganizationState) -> dict[str, Any]:
        edges_added = resolve_connections(state.topology.connections, state.children)
        return {"edges_added": edges_added}

    async def attach(self, state: ExpandOrganizationState) -> dict[str, Any]:
        """Store the generated children on the entity."""
        state.entity.metadata["internal_entities"] = state.children
        log_with_context(
            logger,
            logging.INFO,
            "Entity expansion complete",
            request_id=state.request_id,
            entity=state.entity.name,
            internal_entities=len(state.children),
            edges=state.edges_added,
        )
        return {"status": ExpansionStatus.SATISFIED}

    async def attach_fallback(self, state: ExpandOrganizationState) -> dict[str, Any]:
        """Store the default children on the entity."""
        children = self.fallback.internal_entities(state.entity)
        state.entity.metadata["internal_entities"] = children
        log_with_context(
            logger,
            logging.WARNING,
            "Using fallback internal entities",
            request_id=state.request_id,
            entity=state.entity.name,
            internal_entities=len(children),
        )
        return {"children": children, "status": ExpansionStatus.FAILED}

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------

    @staticmethod
    def route_after_cache(state: ExpandOrganizationState) -> str:
        return "cached" if state.cache_hit else "miss"

    @staticmethod
    def route_on_error(state: ExpandOrganizationState) -> str:
        return "fallback" if state.error else "continue"

    def _build_graph(self) -> StateGraph:
        """Build the organization expansion graph."""
        workflow = StateGraph(ExpandOrganizationState)

        workflow.add_node("check_cache", self.check_cache)
        workflow.add_node("request_topology", self.request_topology)
        workflow.add_node("materialize", self.materialize)
        workflow.add_node("resolve", self.resolve)
        workflow.add_node("attach", self.attach)
        workflow.add_node("attach_fallback", self.attach_fallback)

        workflow.set_entry_point("check_cache")
        workflow.add_conditional_edges(
            "check_cache",
            self.route_after_cache,
            {"cached": END, "miss": "request_topology"},
        )
        workflow.add_conditional_edges(
            "request_topology",
            self.route_on_error,
            {"continue": "materialize", "fallback": "attach_fallback"},
        )
        workflow.add_conditional_edges(
            "materialize",
            self.route_on_error,
            {"continue": "resolve", "fallback": "attach_fallback"},
        )
        workflow.add_edge("resolve", "attach")
        workflow.add_edge("attach", END)
        workflow.add_edge("attach_fallback", END)

        return workflow
