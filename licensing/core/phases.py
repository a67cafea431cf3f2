"""
Phase table for the licensing workflow.

Order: MOJ -> Club -> Police -> Province -> Intelligence -> CFR -> Operator (final).

Each role owns exactly one phase and may only act on an application whose
current status is that phase.  The table is built once at import time and
cannot be mutated afterwards.

Usage:
    from licensing.core.phases import PHASES, ROLE_TO_PHASE, phase_for_role

    phase_for_role("police")   # -> "phase3_police"
"""

from enum import Enum
from types import MappingProxyType


class Phase(str, Enum):
    MOJ_FLAG = "phase1_moj_flag"
    CLUB = "phase2_club"
    POLICE = "phase3_police"
    PROVINCE = "phase4_province"
    INTELLIGENCE = "phase5_intelligence"
    CFR = "phase6_cfr"
    OPERATOR = "phase7_operator"


class Role(str, Enum):
    MOJ_FLAG = "moj_flag"
    CLUB = "club"
    POLICE = "police"
    PROVINCE = "province"
    INTELLIGENCE = "intelligence"
    CFR = "cfr"
    OPERATOR = "operator"


# Enum definition order is the workflow order.
PHASES: tuple[str, ...] = tuple(p.value for p in Phase)

ROLE_TO_PHASE = MappingProxyType({
    Role.MOJ_FLAG.value: Phase.MOJ_FLAG.value,
    Role.CLUB.value: Phase.CLUB.value,
    Role.POLICE.value: Phase.POLICE.value,
    Role.PROVINCE.value: Phase.PROVINCE.value,
    Role.INTELLIGENCE.value: Phase.INTELLIGENCE.value,
    Role.CFR.value: Phase.CFR.value,
    Role.OPERATOR.value: Phase.OPERATOR.value,
})

INITIAL_PHASE = PHASES[0]
FINAL_PHASE = PHASES[-1]


def validate_phase_table(phases=PHASES, role_to_phase=ROLE_TO_PHASE) -> None:
    """Fail fast on a misconfigured phase table.

    Every mapped phase must exist in ``phases`` and no phase may be owned by
    more than one role.

    Raises:
        RuntimeError: describing the first inconsistency found.
    """
    if len(set(phases)) != len(phases):
        raise RuntimeError(f"Duplicate phase identifiers in {list(phases)}")

    owners: dict[str, str] = {}
    for role, phase in role_to_phase.items():
        if phase not in phases:
            raise RuntimeError(f"Role '{role}' maps to unknown phase '{phase}'")
        if phase in owners:
            raise RuntimeError(
                f"Phase '{phase}' is owned by both '{owners[phase]}' and '{role}'"
            )
        owners[phase] = role


validate_phase_table()


def phase_for_role(role: str | None) -> str | None:
    """Return the phase a role may act on, or None for a missing/unknown role."""
    if not role:
        return None
    return ROLE_TO_PHASE.get(role)


def role_for_phase(phase: str | None) -> str | None:
    """Reverse lookup: the single role owning ``phase``."""
    for role, owned in ROLE_TO_PHASE.items():
        if owned == phase:
            return role
    return None


def phase_index(status: str | None) -> int:
    """Position of ``status`` in PHASES, -1 if unrecognised."""
    try:
        return PHASES.index(status)
    except ValueError:
        return -1


def is_terminal(status: str | None) -> bool:
    return status == FINAL_PHASE


def phase_table() -> list[dict]:
    """Serialisable view of the table for API consumers."""
    return [
        {
            "index": i,
            "phase": phase,
            "role": role_for_phase(phase),
            "is_initial": i == 0,
            "is_final": i == len(PHASES) - 1,
        }
        for i, phase in enumerate(PHASES)
    ]
