"""Board snapshots: YAML loading and committing evaluated moves.

:func:`move_card` is a reference caller of the rule engine.  It evaluates a
move against an immutable :class:`~flowgate.model.WorkflowBoard` and, when
allowed, returns a new board with the card relocated and every dependency
snapshot of that card refreshed.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import yaml

from flowgate.engine.rule_engine import can_move
from flowgate.model import ActivityLog, CardStatus, WorkflowBoard, parse_status
from flowgate.notifications import notify_move_result

if TYPE_CHECKING:
    from pathlib import Path

    from flowgate.engine.toggles import RuleToggleState
    from flowgate.engine.validators import MoveVerdict
    from flowgate.model import User, UserRole, WorkflowCard
    from flowgate.notifications import MoveFailureNotification, MoveSuccessNotification

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class BoardFileError(Exception):
    """Raised when a board snapshot file cannot be read or is invalid."""


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MoveOutcome:
    """Result of :func:`move_card`.

    ``board`` and ``card`` are the updated values when the move was allowed
    and the untouched originals otherwise.
    """

    verdict: MoveVerdict
    board: WorkflowBoard
    card: WorkflowCard
    notification: MoveSuccessNotification | MoveFailureNotification


# ---------------------------------------------------------------------------
# YAML I/O
# ---------------------------------------------------------------------------


def load_board(path: Path) -> WorkflowBoard:
    """Parse a board snapshot YAML file.

    Raises :class:`BoardFileError` on unreadable files and schema errors.
    """
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, UnicodeDecodeError) as exc:
        msg = f"{path}: cannot read board file: {exc}"
        raise BoardFileError(msg) from exc
    except yaml.YAMLError as exc:
        msg = f"{path}: invalid YAML: {exc}"
        raise BoardFileError(msg) from exc

    if not isinstance(data, dict):
        msg = f"{path}: board file must be a YAML mapping"
        raise BoardFileError(msg)

    try:
        return WorkflowBoard.from_dict(data)
    except (TypeError, ValueError) as exc:
        msg = f"{path}: {exc}"
        raise BoardFileError(msg) from exc


def board_to_dict(board: WorkflowBoard) -> dict[str, object]:
    return board.to_dict()


def dump_board(board: WorkflowBoard, path: Path) -> None:
    """Write *board* to *path* in the same format :func:`load_board` reads."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        yaml.safe_dump(board_to_dict(board), fh, sort_keys=False, allow_unicode=True)


# ---------------------------------------------------------------------------
# Move commit
# ---------------------------------------------------------------------------


def sync_dependency_snapshots(
    board: WorkflowBoard, card_id: str, status: CardStatus
) -> WorkflowBoard:
    """Return *board* with every dependency on *card_id* set to *status*.

    This is the single place that refreshes denormalized dependency
    snapshots; call it whenever a card's status changes.
    """
    refreshed = 0
    columns = []
    for column in board.columns:
        cards = []
        for card in column.cards:
            if any(dep.id == card_id and dep.status != status for dep in card.dependencies):
                deps = tuple(
                    replace(dep, status=status) if dep.id == card_id else dep
                    for dep in card.dependencies
                )
                card = replace(card, dependencies=deps)  # noqa: PLW2901
                refreshed += 1
            cards.append(card)
        columns.append(replace(column, cards=tuple(cards)))

    if refreshed:
        logger.debug(
            "Refreshed %d dependency snapshot(s) of %s to %s", refreshed, card_id, status.value
        )
    return replace(board, columns=tuple(columns))


def _relocate(board: WorkflowBoard, moved: WorkflowCard, to_status: CardStatus) -> WorkflowBoard:
    columns = []
    for column in board.columns:
        cards = tuple(c for c in column.cards if c.id != moved.id)
        if column.status == to_status:
            cards = (*cards, moved)
        columns.append(replace(column, cards=cards))
    return replace(board, columns=tuple(columns))


def move_card(
    board: WorkflowBoard,
    card_id: str,
    to_status: CardStatus | str,
    role: UserRole | str,
    *,
    actor: User | None = None,
    toggles: RuleToggleState | None = None,
    now: datetime | None = None,
) -> MoveOutcome:
    """Evaluate and, when allowed, apply a move on a board snapshot.

    Raises ``LookupError`` when *card_id* is not on the board.  A denied
    move returns the original board unchanged.
    """
    card = board.find_card(card_id)
    if card is None:
        msg = f"Card '{card_id}' not found on board '{board.id}'"
        raise LookupError(msg)

    target = parse_status(to_status)
    target_column = board.column_for_status(target) if target is not None else None

    verdict = can_move(
        card,
        card.status,
        to_status,
        role,
        board.settings,
        toggles=toggles,
        target_column=target_column,
    )
    notification = notify_move_result(card, card.status, to_status, verdict)

    if not verdict.allowed:
        logger.info("Move of %s to %s denied: %s", card_id, to_status, verdict.reason)
        return MoveOutcome(verdict=verdict, board=board, card=card, notification=notification)

    assert target is not None  # can_move denies unknown statuses
    if target_column is None:
        msg = f"Board '{board.id}' has no column for status '{target.value}'"
        raise LookupError(msg)

    timestamp = (now or datetime.now(tz=timezone.utc)).isoformat()
    log = ActivityLog(
        id=uuid.uuid4().hex,
        card_id=card.id,
        user_id=actor.id if actor is not None else "",
        user_name=actor.name if actor is not None else "",
        action="moved",
        timestamp=timestamp,
        from_status=card.status,
        to_status=target,
    )
    moved = replace(
        card,
        status=target,
        updated_at=timestamp,
        activity_logs=(*card.activity_logs, log),
    )

    updated = _relocate(board, moved, target)
    updated = sync_dependency_snapshots(updated, card.id, target)
    logger.info("Moved %s: %s -> %s", card_id, card.status.value, target.value)
    return MoveOutcome(
        verdict=verdict,
        board=updated,
        card=updated.find_card(card_id) or moved,
        notification=notification,
    )
