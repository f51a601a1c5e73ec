"""Map health-check components onto the named slots of the report.

Upstream component names are free text. A name is split into lower-case
words on separators and camelCase humps ("SelfService-DB" gives ``self``,
``service``, ``db``), and each pair of neighbouring words is also joined so
that "Self Service" and "SelfService" both yield ``selfservice``. Rules match
whole terms only; "Business Database" has no ``ess`` term and "Feedback" has
no ``db`` term. The first rule that matches decides the component's slot; a
slot keeps the first component assigned to it. Components that match no rule
still appear in the outcome's component list.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from typing import Final

from .models import ComponentHealth, HealthSlot

SlotPredicate = Callable[[frozenset[str]], bool]

_SEPARATORS = re.compile(r"[\s\-_.,/:()]+")
_WORDS = re.compile(r"[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z]+|[A-Z]+|\d+")


def component_terms(name: str) -> frozenset[str]:
    """Lower-case words of ``name`` plus every adjacent pair joined together."""

    words = [
        word.lower()
        for part in _SEPARATORS.split(name)
        for word in _WORDS.findall(part)
    ]
    pairs = (first + second for first, second in zip(words, words[1:]))
    return frozenset((*words, *pairs))


def _matches(*groups: tuple[str, ...], excluding: tuple[str, ...] = ()) -> SlotPredicate:
    """Every group needs one term present; no excluded term may be."""

    def predicate(terms: frozenset[str]) -> bool:
        if terms.intersection(excluding):
            return False
        return all(terms.intersection(group) for group in groups)

    return predicate


_SELF_SERVICE = ("selfservice", "ess")
_DATABASE = ("database", "databases", "db")
_WORKFLOW = ("workflow", "wfe")

SLOT_RULES: Final[tuple[tuple[SlotPredicate, HealthSlot], ...]] = (
    (_matches(("payglobal",), _DATABASE), HealthSlot.PAYGLOBAL_DATABASE),
    (
        _matches(("selfservice",), ("software", "app", "application", "ess"), excluding=_DATABASE),
        HealthSlot.SELF_SERVICE_SOFTWARE,
    ),
    (_matches(_SELF_SERVICE, _DATABASE), HealthSlot.SELF_SERVICE_DATABASE),
    (_matches(("bridge",), excluding=("communication", "communications")), HealthSlot.BRIDGE),
    (_matches(_WORKFLOW, _DATABASE), HealthSlot.WFE_DATABASE),
    (_matches(("bridge",), ("communication", "communications")), HealthSlot.BRIDGE_COMMUNICATION),
    (_matches(_WORKFLOW, ("endpoint", "endpoints")), HealthSlot.WORKFLOW_ENDPOINTS),
)


def slot_for(name: str) -> HealthSlot | None:
    terms = component_terms(name)
    for predicate, slot in SLOT_RULES:
        if predicate(terms):
            return slot
    return None


def assign_slots(components: Iterable[ComponentHealth]) -> dict[HealthSlot, ComponentHealth]:
    assigned: dict[HealthSlot, ComponentHealth] = {}
    for component in components:
        slot = slot_for(component.name)
        if slot is not None and slot not in assigned:
            assigned[slot] = component
    return assigned


__all__ = [
    "SLOT_RULES",
    "SlotPredicate",
    "component_terms",
    "slot_for",
    "assign_slots",
]
