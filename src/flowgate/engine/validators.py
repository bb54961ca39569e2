"""Card-move validators: one pure function per rule.

Each validator only reads its arguments and returns a verdict; none of them
raises for a domain-rule failure.  :func:`flowgate.engine.rule_engine.can_move`
is the only place that chains them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from flowgate.model import (
    COMPLETED_DEPENDENCY_STATUSES,
    ROLE_PERMISSIONS,
    STATUS_TRANSITIONS,
    CardStatus,
    parse_role,
    parse_status,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from flowgate.model import (
        BoardSettings,
        Dependency,
        User,
        UserRole,
        WorkflowCard,
    )

logger = logging.getLogger(__name__)

# Gate names reported in MoveVerdict.rule
GATE_BASIC = "basic"
GATE_TRANSITION = "transition"
GATE_PERMISSION = "permission"
GATE_DEPENDENCY = "dependency"
GATE_REVIEWER = "reviewer"
GATE_WIP = "wip"

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class RuleEngineError(Exception):
    """Raised when the engine is called in violation of its preconditions."""


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MoveVerdict:
    """Outcome of a move evaluation.

    ``reason`` is ``None`` when the move is allowed.  ``rule`` names the gate
    that denied the move and ``details`` carries gate-specific data such as
    reviewer counts or pending dependency ids.
    """

    allowed: bool
    reason: str | None = None
    rule: str | None = None
    details: dict[str, object] = field(default_factory=dict, hash=False)


def allow() -> MoveVerdict:
    """Return a fresh allowed verdict; verdicts never share a ``details`` dict."""
    return MoveVerdict(allowed=True)


def _deny(rule: str, reason: str, **details: object) -> MoveVerdict:
    return MoveVerdict(allowed=False, reason=reason, rule=rule, details=dict(details))


@dataclass(frozen=True)
class DependencyValidationResult:
    is_valid: bool
    pending_dependencies: tuple[Dependency, ...] = ()
    circular_dependencies: tuple[str, ...] = ()


@dataclass(frozen=True)
class ReviewerValidationResult:
    is_valid: bool
    current_count: int
    required_count: int


# ---------------------------------------------------------------------------
# Validators
# ---------------------------------------------------------------------------


def _raw(value: object) -> object:
    return value.value if isinstance(value, Enum) else value


def validate_basic_rules(
    card: WorkflowCard | None,
    from_status: CardStatus | str,
    to_status: CardStatus | str,
    role: UserRole | str,
) -> MoveVerdict:
    """Check the move request itself: card present, real move, known values.

    Raises :class:`RuleEngineError` when *card* is ``None``.
    """
    if card is None:
        msg = "A card is required to evaluate a move"
        raise RuleEngineError(msg)

    if _raw(from_status) == _raw(to_status):
        return _deny(GATE_BASIC, "No-op move: the card is already in this status")

    if _raw(from_status) == CardStatus.DONE.value:
        return _deny(GATE_BASIC, "Terminal state: cards in done cannot be moved any further")

    if parse_status(from_status) is None or parse_status(to_status) is None:
        return _deny(
            GATE_BASIC,
            f"Invalid status: {_raw(from_status)!r} -> {_raw(to_status)!r}",
        )

    if parse_role(role) is None:
        return _deny(GATE_BASIC, f"Invalid role: {_raw(role)!r}")

    return allow()


def validate_state_transition(
    from_status: CardStatus,
    to_status: CardStatus,
    board_settings: BoardSettings,
) -> MoveVerdict:
    """Enforce the adjacency table unless the board allows skipping stages."""
    if board_settings.allow_skip_stages:
        return allow()

    if to_status not in STATUS_TRANSITIONS[from_status]:
        return _deny(
            GATE_TRANSITION,
            f"Cannot skip stages: {from_status.value} -> {to_status.value} "
            f"is not an adjacent transition",
        )
    return allow()


def validate_role_permissions(to_status: CardStatus, role: UserRole) -> MoveVerdict:
    """Check that *role* may land a card on *to_status*."""
    permissions = ROLE_PERMISSIONS[role]
    if to_status in permissions.can_move_to_status:
        return allow()

    # Deployment sign-off gets its own reason.
    if to_status == CardStatus.DONE:
        return _deny(
            GATE_PERMISSION,
            "Permission denied: the role must be product owner to move a card to done",
            role=role.value,
        )
    return _deny(
        GATE_PERMISSION,
        f"Permission denied: role '{role.value}' cannot move cards to '{to_status.value}'",
        role=role.value,
    )


def validate_dependencies(
    dependencies: Sequence[Dependency] | None,
    owner_card_id: str | None = None,
) -> DependencyValidationResult:
    """Find circular self-references and pending required dependencies.

    A dependency is pending when it is required and its status is neither
    ``qa_done`` nor ``done``.  Self-references are reported on their own and
    make the result invalid; pending dependencies are not computed for them.
    """
    if not dependencies:
        return DependencyValidationResult(is_valid=True)

    if owner_card_id:
        circular = tuple(dep.id for dep in dependencies if dep.id == owner_card_id)
        if circular:
            logger.debug("Circular dependencies on card %s: %s", owner_card_id, circular)
            return DependencyValidationResult(is_valid=False, circular_dependencies=circular)

    pending = tuple(
        dep
        for dep in dependencies
        if dep.required and dep.status not in COMPLETED_DEPENDENCY_STATUSES
    )
    for dep in pending:
        logger.debug("Pending dependency %s (%s): %s", dep.id, dep.title, dep.status.value)

    return DependencyValidationResult(is_valid=not pending, pending_dependencies=pending)


def validate_reviewers(
    reviewers: Sequence[User] | None,
    board_settings: BoardSettings,
) -> ReviewerValidationResult:
    current_count = len(reviewers) if reviewers else 0

    if not board_settings.require_reviewers:
        return ReviewerValidationResult(
            is_valid=True, current_count=current_count, required_count=0
        )

    required_count = board_settings.min_reviewers
    return ReviewerValidationResult(
        is_valid=current_count >= required_count,
        current_count=current_count,
        required_count=required_count,
    )


def validate_wip_limits(
    column_cards: Sequence[WorkflowCard],
    max_cards: int | None = None,
    is_adding_card: bool = True,
) -> MoveVerdict:
    """Check a column's WIP ceiling.  ``None`` or non-positive *max_cards* means unlimited."""
    if not max_cards or max_cards <= 0:
        return allow()

    future_count = len(column_cards) + (1 if is_adding_card else 0)
    if future_count > max_cards:
        return _deny(
            GATE_WIP,
            f"WIP limit exceeded: at most {max_cards} cards allowed",
            current_count=len(column_cards),
            max_cards=max_cards,
        )
    return allow()
