"""Tests for IdentifierService."""

import itertools

import pytest

from infra_engine.core.identifiers import IdentifierService


def test_default_ids_are_unique():
    service = IdentifierService()
    ids = {service.issue() for _ in range(500)}
    assert len(ids) == 500
    assert service.issued_count() == 500


def test_duplicate_from_factory_is_skipped():
    values = iter(["a", "a", "b"])
    service = IdentifierService(factory=lambda: next(values))

    assert service.issue() == "a"
    assert service.issue() == "b"


def test_factory_stuck_on_one_value_raises():
    service = IdentifierService(factory=lambda: "same")
    service.issue()

    with pytest.raises(RuntimeError):
        service.issue()


def test_sequential_factory():
    counter = itertools.count(1)
    service = IdentifierService(factory=lambda: f"n{next(counter)}")
    assert [service.issue() for _ in range(3)] == ["n1", "n2", "n3"]
