"""Shared test fixtures for trackrelay."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from trackrelay.models.events import DispatchedEvent, make_key
from trackrelay.routing.destinations.memory import MemoryDestination


@pytest.fixture
def make_event() -> Callable[..., DispatchedEvent]:
    """Factory fixture: build a DispatchedEvent with sensible defaults."""

    def _factory(
        area: str = "auth",
        name: str = "login",
        payload: dict[str, Any] | None = None,
        **overrides: Any,
    ) -> DispatchedEvent:
        defaults: dict[str, Any] = {
            "key": make_key(area, name),
            "area": area,
            "name": name,
            "payload": payload if payload is not None else {"auth_method": "google"},
        }
        defaults.update(overrides)
        return DispatchedEvent(**defaults)

    return _factory


@pytest.fixture
def event(make_event: Callable[..., DispatchedEvent]) -> DispatchedEvent:
    """Convenience: a ready-made ``auth::login`` event."""
    return make_event()


@pytest.fixture
def memory() -> MemoryDestination:
    """A batch-capable in-memory destination."""
    return MemoryDestination("memory")


@pytest.fixture
def errors() -> list[tuple[BaseException, DispatchedEvent | None]]:
    """A list that ``collect_errors`` appends to."""
    return []


@pytest.fixture
def collect_errors(
    errors: list[tuple[BaseException, DispatchedEvent | None]],
) -> Callable[[BaseException, DispatchedEvent | None], None]:
    """An ``on_error`` callback recording every report."""

    def _collect(error: BaseException, event: DispatchedEvent | None = None) -> None:
        errors.append((error, event))

    return _collect
