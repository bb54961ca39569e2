"""Card-move rule engine: run the validators in order and return the first denial."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from flowgate.engine.toggles import RuleToggleState, get_default_store
from flowgate.engine.validators import (
    GATE_DEPENDENCY,
    GATE_REVIEWER,
    MoveVerdict,
    allow,
    validate_basic_rules,
    validate_dependencies,
    validate_reviewers,
    validate_role_permissions,
    validate_state_transition,
    validate_wip_limits,
)
from flowgate.model import BoardSettings, CardStatus, parse_role, parse_status

if TYPE_CHECKING:
    from flowgate.model import UserRole, WorkflowCard, WorkflowColumn

logger = logging.getLogger(__name__)


def _coerce_settings(board_settings: BoardSettings | Mapping[str, Any] | None) -> BoardSettings:
    if isinstance(board_settings, BoardSettings):
        return board_settings
    return BoardSettings.from_mapping(board_settings)


def can_move(
    card: WorkflowCard | None,
    from_status: CardStatus | str,
    to_status: CardStatus | str,
    role: UserRole | str,
    board_settings: BoardSettings | Mapping[str, Any] | None,
    *,
    toggles: RuleToggleState | None = None,
    target_column: WorkflowColumn | None = None,
) -> MoveVerdict:
    """Decide whether *card* may move from *from_status* to *to_status*.

    Gates, in order (the first failure wins):

    1. basic validity (``RuleEngineError`` when *card* is ``None``)
    2. stage adjacency, unless ``allow_skip_stages``
    3. role permission for the target status
    4. dependency completion, on entry to ``ready_for_qa`` only
    5. reviewer quorum, on entry to ``ready_for_qa`` only
    6. WIP limit of *target_column*, when given and ``enforce_wip_limits``

    *toggles* selects which optional checks (4 and 5) run.  When ``None``,
    a snapshot of the process-wide store is taken once per call.
    The engine never mutates its arguments.
    """
    verdict = validate_basic_rules(card, from_status, to_status, role)
    if not verdict.allowed:
        return verdict
    assert card is not None  # validate_basic_rules raises otherwise

    source = parse_status(from_status)
    target = parse_status(to_status)
    actor_role = parse_role(role)
    assert source is not None and target is not None and actor_role is not None

    settings = _coerce_settings(board_settings)
    rule_state = toggles if toggles is not None else get_default_store().snapshot()

    verdict = validate_state_transition(source, target, settings)
    if not verdict.allowed:
        return verdict

    verdict = validate_role_permissions(target, actor_role)
    if not verdict.allowed:
        return verdict

    if target == CardStatus.READY_FOR_QA:
        verdict = _check_dependencies(card, rule_state)
        if not verdict.allowed:
            return verdict

        verdict = _check_reviewers(card, settings, rule_state)
        if not verdict.allowed:
            return verdict

    if target_column is not None and settings.enforce_wip_limits:
        already_there = any(c.id == card.id for c in target_column.cards)
        verdict = validate_wip_limits(
            target_column.cards, target_column.max_cards, is_adding_card=not already_there
        )
        if not verdict.allowed:
            return verdict

    return allow()


def _check_dependencies(card: WorkflowCard, rule_state: RuleToggleState) -> MoveVerdict:
    if not rule_state.dependency_check_enabled:
        logger.debug("Dependency check disabled, skipping for card %s", card.id)
        return allow()

    result = validate_dependencies(card.dependencies, card.id)
    if result.circular_dependencies:
        return MoveVerdict(
            allowed=False,
            reason=f"Circular dependency: card '{card.id}' depends on itself",
            rule=GATE_DEPENDENCY,
            details={"circular": list(result.circular_dependencies)},
        )
    if not result.is_valid:
        titles = ", ".join(dep.title for dep in result.pending_dependencies)
        return MoveVerdict(
            allowed=False,
            reason=f"Dependencies are not complete: {titles}",
            rule=GATE_DEPENDENCY,
            details={"pending": [dep.id for dep in result.pending_dependencies]},
        )
    return allow()


def _check_reviewers(
    card: WorkflowCard, settings: BoardSettings, rule_state: RuleToggleState
) -> MoveVerdict:
    if not rule_state.reviewer_check_enabled:
        logger.debug("Reviewer check disabled, skipping for card %s", card.id)
        return allow()
    if not settings.require_reviewers:
        return allow()

    result = validate_reviewers(card.reviewers, settings)
    if not result.is_valid:
        return MoveVerdict(
            allowed=False,
            reason=(
                f"Not enough reviewers: currently {result.current_count}, "
                f"at least {result.required_count} required"
            ),
            rule=GATE_REVIEWER,
            details={
                "current_count": result.current_count,
                "required_count": result.required_count,
            },
        )
    return allow()
