"""Identifier issuing for profiles and infrastructure entities."""

from collections.abc import Callable
from uuid import uuid4


def _uuid4_str() -> str:
    return str(uuid4())


class IdentifierService:
    """Issues unique, never-reused string identifiers.

    The default factory is uuid4. Tests inject a deterministic factory; the
    service still refuses to hand out an id twice.
    """

    MAX_COLLISION_RETRIES = 8

    def __init__(self, factory: Callable[[], str] | None = None):
        self._factory = factory or _uuid4_str
        self._issued: set[str] = set()

    def issue(self) -> str:
        """Return a fresh identifier.

        Raises:
            RuntimeError: If the factory keeps returning already issued ids
        """
        for _ in range(self.MAX_COLLISION_RETRIES):
            candidate = self._factory()
            if candidate not in self._issued:
                self._issued.add(candidate)
                return candidate
        raise RuntimeError("Identifier factory produced only duplicate ids")

    def issued_count(self) -> int:
        return len(self._issued)
