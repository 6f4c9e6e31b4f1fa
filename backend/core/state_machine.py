"""Shared helpers for status fields backed by explicit transition tables."""

from __future__ import annotations

from typing import Mapping

from django.core.exceptions import ValidationError

TransitionTable = Mapping[str, frozenset[str]]


def can_transition(table: TransitionTable, current: str, target: str) -> bool:
    """Return True if ``current -> target`` is listed in the table."""
    return target in table.get(current, frozenset())


def assert_transition(
    table: TransitionTable,
    current: str,
    target: str,
    *,
    field: str = "status",
    label: str = "object",
) -> None:
    """Raise ValidationError unless the table allows ``current -> target``."""
    if not can_transition(table, current, target):
        raise ValidationError(
            {field: [f"Cannot move {label} from '{current}' to '{target}'."]}
        )
