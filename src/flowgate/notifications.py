"""User-facing messages for move verdicts and rule toggles.

Builders here are pure: they turn a verdict or a toggle change into a
:class:`NotificationMessage`.  Only :func:`render_notification` prints.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from flowgate.engine.toggles import RULE_METADATA
from flowgate.engine.validators import (
    GATE_DEPENDENCY,
    GATE_PERMISSION,
    GATE_REVIEWER,
    GATE_WIP,
)
from flowgate.model import CardStatus, parse_status

if TYPE_CHECKING:
    from rich.console import Console

    from flowgate.engine.validators import MoveVerdict
    from flowgate.model import WorkflowCard

STATUS_DISPLAY_NAMES: dict[CardStatus, str] = {
    CardStatus.BACKLOG: "Backlog",
    CardStatus.IN_PROGRESS: "In Progress",
    CardStatus.READY_FOR_QA: "Ready for QA",
    CardStatus.QA_DONE: "QA Done",
    CardStatus.READY_FOR_DEPLOY: "Ready for Deploy",
    CardStatus.DONE: "Done",
}

_SUGGESTIONS: dict[str, str] = {
    GATE_DEPENDENCY: "Wait for the dependency to finish QA, "
    "or disable the dependency check in the rule settings.",
    GATE_REVIEWER: "Add more reviewers, or disable the reviewer check in the rule settings.",
    GATE_PERMISSION: "Switch to a user with the product owner role.",
    GATE_WIP: "Move a card out of the target column first.",
}

# Fallback when the failed gate is unknown: keyword in the reason -> gate.
_REASON_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("dependenc", GATE_DEPENDENCY),
    ("reviewer", GATE_REVIEWER),
    ("permission", GATE_PERMISSION),
    ("wip", GATE_WIP),
)

_STYLES: dict[str, tuple[str, str]] = {
    "success": ("✓", "green"),
    "error": ("✗", "red"),
    "warning": ("!", "yellow"),
    "info": ("i", "blue"),
}


@dataclass(frozen=True)
class NotificationMessage:
    type: str  # "success" | "error" | "info" | "warning"
    title: str
    description: str | None = None
    duration_ms: int | None = None


@dataclass(frozen=True)
class RuleChangeNotification:
    rule: str
    enabled: bool
    impact: str
    message: NotificationMessage


@dataclass(frozen=True)
class MoveSuccessNotification:
    card_title: str
    from_status: str
    to_status: str
    message: NotificationMessage


@dataclass(frozen=True)
class MoveFailureNotification:
    card_title: str
    from_status: str
    to_status: str
    reason: str
    suggestion: str | None
    message: NotificationMessage


def display_name(status: CardStatus | str) -> str:
    """Human-readable name of *status*; unknown values are shown as given."""
    parsed = parse_status(status)
    if parsed is None:
        return str(status)
    return STATUS_DISPLAY_NAMES[parsed]


def suggest_fix(reason: str, rule: str | None = None) -> str | None:
    """Return a one-line suggestion for a denial, or ``None`` if none applies."""
    if rule is not None and rule in _SUGGESTIONS:
        return _SUGGESTIONS[rule]
    lowered = reason.lower()
    for keyword, gate in _REASON_KEYWORDS:
        if keyword in lowered:
            return _SUGGESTIONS[gate]
    return None


def create_rule_change_notification(rule: str, enabled: bool) -> RuleChangeNotification:
    metadata = RULE_METADATA[rule]
    impact = metadata.enabled_description if enabled else metadata.disabled_description
    state = "enabled" if enabled else "disabled"
    return RuleChangeNotification(
        rule=rule,
        enabled=enabled,
        impact=impact,
        message=NotificationMessage(
            type="success" if enabled else "warning",
            title=f"{metadata.name} {state}",
            description=impact,
            # Disabling a safeguard stays on screen a little longer.
            duration_ms=3000 if enabled else 4000,
        ),
    )


def create_move_success_notification(
    card_title: str,
    from_status: CardStatus | str,
    to_status: CardStatus | str,
) -> MoveSuccessNotification:
    from_name = display_name(from_status)
    to_name = display_name(to_status)
    return MoveSuccessNotification(
        card_title=card_title,
        from_status=from_name,
        to_status=to_name,
        message=NotificationMessage(
            type="success",
            title="Card moved",
            description=f"'{card_title}' moved from {from_name} to {to_name}",
            duration_ms=3000,
        ),
    )


def create_move_failure_notification(
    card_title: str,
    from_status: CardStatus | str,
    to_status: CardStatus | str,
    reason: str,
    suggestion: str | None = None,
    rule: str | None = None,
) -> MoveFailureNotification:
    """Build the failure message: the literal *reason*, plus a suggestion when derivable."""
    resolved = suggestion or suggest_fix(reason, rule)
    description = f"{reason} {resolved}" if resolved else reason
    return MoveFailureNotification(
        card_title=card_title,
        from_status=display_name(from_status),
        to_status=display_name(to_status),
        reason=reason,
        suggestion=resolved,
        message=NotificationMessage(
            type="error",
            title="Card move failed",
            description=description,
            duration_ms=5000,
        ),
    )


def notify_move_result(
    card: WorkflowCard,
    from_status: CardStatus | str,
    to_status: CardStatus | str,
    verdict: MoveVerdict,
) -> MoveSuccessNotification | MoveFailureNotification:
    if verdict.allowed:
        return create_move_success_notification(card.title, from_status, to_status)
    return create_move_failure_notification(
        card.title,
        from_status,
        to_status,
        verdict.reason or "Unknown error",
        rule=verdict.rule,
    )


def render_notification(message: NotificationMessage, console: Console) -> None:
    """Print *message* as a single styled line (plus description) to *console*."""
    from rich.text import Text

    indicator, style = _STYLES.get(message.type, ("?", "white"))
    line = Text()
    line.append(f"{indicator} ", style=f"bold {style}")
    line.append(message.title, style="bold")
    console.print(line)
    if message.description:
        console.print(Text(f"  {message.description}"))
