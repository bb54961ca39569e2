"""Workflow domain model: statuses, roles, cards, columns, boards, and rule tables."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class CardStatus(str, Enum):
    """Lifecycle stage of a card (one board column per stage)."""

    BACKLOG = "backlog"
    IN_PROGRESS = "in_progress"
    READY_FOR_QA = "ready_for_qa"
    QA_DONE = "qa_done"
    READY_FOR_DEPLOY = "ready_for_deploy"
    DONE = "done"


class UserRole(str, Enum):
    """Role of the user performing a move."""

    DEVELOPER = "developer"
    PRODUCT_OWNER = "product_owner"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


VALID_ACTIVITY_ACTIONS: frozenset[str] = frozenset(
    {"created", "moved", "updated", "approved", "assigned"}
)

# Statuses that count as verified-complete work for dependency checks.
COMPLETED_DEPENDENCY_STATUSES: frozenset[CardStatus] = frozenset(
    {CardStatus.QA_DONE, CardStatus.DONE}
)


def parse_status(value: object) -> CardStatus | None:
    """Return the CardStatus for *value*, or ``None`` if it is not a known status."""
    if isinstance(value, CardStatus):
        return value
    try:
        return CardStatus(value)
    except (TypeError, ValueError):
        return None


def parse_role(value: object) -> UserRole | None:
    """Return the UserRole for *value*, or ``None`` if it is not a known role."""
    if isinstance(value, UserRole):
        return value
    try:
        return UserRole(value)
    except (TypeError, ValueError):
        return None


# ---------------------------------------------------------------------------
# Rule tables
# ---------------------------------------------------------------------------

# Statuses reachable from each status by a single advance-or-retreat move.
STATUS_TRANSITIONS: dict[CardStatus, tuple[CardStatus, ...]] = {
    CardStatus.BACKLOG: (CardStatus.IN_PROGRESS,),
    CardStatus.IN_PROGRESS: (CardStatus.READY_FOR_QA, CardStatus.BACKLOG),
    CardStatus.READY_FOR_QA: (CardStatus.QA_DONE, CardStatus.IN_PROGRESS),
    CardStatus.QA_DONE: (CardStatus.READY_FOR_DEPLOY, CardStatus.READY_FOR_QA),
    CardStatus.READY_FOR_DEPLOY: (CardStatus.DONE, CardStatus.QA_DONE),
    CardStatus.DONE: (),
}


@dataclass(frozen=True)
class RolePermissions:
    """What a role is allowed to do on the board."""

    can_move_to_status: frozenset[CardStatus]
    can_create_card: bool
    can_delete_card: bool
    can_assign_reviewers: bool


ROLE_PERMISSIONS: dict[UserRole, RolePermissions] = {
    UserRole.DEVELOPER: RolePermissions(
        can_move_to_status=frozenset(
            {
                CardStatus.BACKLOG,
                CardStatus.IN_PROGRESS,
                CardStatus.READY_FOR_QA,
                CardStatus.QA_DONE,
            }
        ),
        can_create_card=True,
        can_delete_card=False,
        can_assign_reviewers=True,
    ),
    UserRole.PRODUCT_OWNER: RolePermissions(
        can_move_to_status=frozenset(CardStatus),
        can_create_card=True,
        can_delete_card=True,
        can_assign_reviewers=True,
    ),
}


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def _require_str(data: Mapping[str, Any], key: str, context: str) -> str:
    value = data.get(key)
    if value is None or not isinstance(value, str) or not value.strip():
        msg = f"{context}: missing required '{key}' field"
        raise ValueError(msg)
    return value


def _require_status(data: Mapping[str, Any], key: str, context: str) -> CardStatus:
    raw = data.get(key)
    status = parse_status(raw)
    if status is None:
        msg = (
            f"{context}: invalid {key} '{raw}', "
            f"must be one of {[s.value for s in CardStatus]}"
        )
        raise ValueError(msg)
    return status


def _optional_status(data: Mapping[str, Any], key: str, context: str) -> CardStatus | None:
    if data.get(key) is None:
        return None
    return _require_status(data, key, context)


def _list_of_mappings(data: Mapping[str, Any], key: str, context: str) -> list[Mapping[str, Any]]:
    raw = data.get(key) or []
    if not isinstance(raw, list):
        msg = f"{context}: '{key}' must be a list"
        raise ValueError(msg)
    for idx, item in enumerate(raw):
        if not isinstance(item, Mapping):
            msg = f"{context}: {key} entry at index {idx} must be a mapping"
            raise ValueError(msg)
    return raw


def _optional_str(value: object) -> str | None:
    return str(value) if value is not None else None


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class User:
    id: str
    name: str
    email: str = ""
    role: UserRole = UserRole.DEVELOPER
    avatar: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], context: str = "user") -> User:
        user_id = _require_str(data, "id", context)
        role_raw = data.get("role", UserRole.DEVELOPER.value)
        role = parse_role(role_raw)
        if role is None:
            msg = (
                f"{context} '{user_id}': invalid role '{role_raw}', "
                f"must be one of {[r.value for r in UserRole]}"
            )
            raise ValueError(msg)
        return cls(
            id=user_id,
            name=str(data.get("name", user_id)),
            email=str(data.get("email", "")),
            role=role,
            avatar=_optional_str(data.get("avatar")),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
        }
        if self.avatar is not None:
            result["avatar"] = self.avatar
        return result


@dataclass(frozen=True)
class Dependency:
    """Snapshot of another card's lifecycle state at evaluation time.

    The snapshot is denormalized: it is not updated when the referenced
    card moves.  :func:`flowgate.board.sync_dependency_snapshots` refreshes
    it when a move is committed.
    """

    id: str
    title: str
    status: CardStatus
    required: bool = True

    @property
    def is_completed(self) -> bool:
        return self.status in COMPLETED_DEPENDENCY_STATUSES

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], context: str = "dependency") -> Dependency:
        dep_id = _require_str(data, "id", context)
        return cls(
            id=dep_id,
            title=str(data.get("title", dep_id)),
            status=_require_status(data, "status", f"{context} '{dep_id}'"),
            required=bool(data.get("required", True)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status.value,
            "required": self.required,
        }


@dataclass(frozen=True)
class ActivityLog:
    """One entry of a card's history."""

    id: str
    card_id: str
    user_id: str
    user_name: str
    action: str  # "created" | "moved" | "updated" | "approved" | "assigned"
    timestamp: str
    from_status: CardStatus | None = None
    to_status: CardStatus | None = None
    description: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], context: str = "activity log") -> ActivityLog:
        log_id = _require_str(data, "id", context)
        ctx = f"{context} '{log_id}'"
        action = _require_str(data, "action", ctx)
        if action not in VALID_ACTIVITY_ACTIONS:
            msg = (
                f"{ctx}: invalid action '{action}', "
                f"must be one of {sorted(VALID_ACTIVITY_ACTIONS)}"
            )
            raise ValueError(msg)
        return cls(
            id=log_id,
            card_id=_require_str(data, "card_id", ctx),
            user_id=_require_str(data, "user_id", ctx),
            user_name=str(data.get("user_name", "")),
            action=action,
            timestamp=str(data.get("timestamp", "")),
            from_status=_optional_status(data, "from_status", ctx),
            to_status=_optional_status(data, "to_status", ctx),
            description=_optional_str(data.get("description")),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "card_id": self.card_id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "action": self.action,
            "timestamp": self.timestamp,
        }
        if self.from_status is not None:
            result["from_status"] = self.from_status.value
        if self.to_status is not None:
            result["to_status"] = self.to_status.value
        if self.description is not None:
            result["description"] = self.description
        return result


@dataclass(frozen=True)
class WorkflowCard:
    """A ticket on the board.  Cards are values: a moved card is a new card."""

    id: str
    title: str
    status: CardStatus
    assignee: User
    description: str = ""
    priority: Priority = Priority.MEDIUM
    reviewers: tuple[User, ...] = ()
    dependencies: tuple[Dependency, ...] = ()
    due_date: str | None = None
    estimated_hours: float | None = None
    tags: tuple[str, ...] = ()
    created_at: str = ""
    updated_at: str = ""
    activity_logs: tuple[ActivityLog, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], context: str = "card") -> WorkflowCard:
        card_id = _require_str(data, "id", context)
        ctx = f"{context} '{card_id}'"

        assignee_raw = data.get("assignee")
        if not isinstance(assignee_raw, Mapping):
            msg = f"{ctx}: 'assignee' must be a mapping"
            raise ValueError(msg)

        priority_raw = data.get("priority", Priority.MEDIUM.value)
        try:
            priority = Priority(priority_raw)
        except ValueError:
            msg = (
                f"{ctx}: invalid priority '{priority_raw}', "
                f"must be one of {[p.value for p in Priority]}"
            )
            raise ValueError(msg) from None

        estimated_raw = data.get("estimated_hours")
        estimated_hours: float | None = None
        if estimated_raw is not None:
            if isinstance(estimated_raw, bool) or not isinstance(estimated_raw, (int, float)):
                msg = f"{ctx}: estimated_hours must be a number, got {estimated_raw!r}"
                raise ValueError(msg)
            estimated_hours = float(estimated_raw)
            if estimated_hours < 0:
                msg = f"{ctx}: estimated_hours must be non-negative"
                raise ValueError(msg)

        tags_raw = data.get("tags") or []
        if not isinstance(tags_raw, list):
            msg = f"{ctx}: 'tags' must be a list"
            raise ValueError(msg)

        return cls(
            id=card_id,
            title=_require_str(data, "title", ctx),
            status=_require_status(data, "status", ctx),
            assignee=User.from_dict(assignee_raw, f"{ctx} assignee"),
            description=str(data.get("description", "")),
            priority=priority,
            reviewers=tuple(
                User.from_dict(r, f"{ctx} reviewer")
                for r in _list_of_mappings(data, "reviewers", ctx)
            ),
            dependencies=tuple(
                Dependency.from_dict(d, f"{ctx} dependency")
                for d in _list_of_mappings(data, "dependencies", ctx)
            ),
            due_date=_optional_str(data.get("due_date")),
            estimated_hours=estimated_hours,
            tags=tuple(str(t) for t in tags_raw),
            created_at=str(data.get("created_at", "")),
            updated_at=str(data.get("updated_at", "")),
            activity_logs=tuple(
                ActivityLog.from_dict(a, f"{ctx} activity log")
                for a in _list_of_mappings(data, "activity_logs", ctx)
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "assignee": self.assignee.to_dict(),
            "reviewers": [r.to_dict() for r in self.reviewers],
            "dependencies": [d.to_dict() for d in self.dependencies],
            "tags": list(self.tags),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "activity_logs": [a.to_dict() for a in self.activity_logs],
        }
        if self.due_date is not None:
            result["due_date"] = self.due_date
        if self.estimated_hours is not None:
            result["estimated_hours"] = self.estimated_hours
        return result


@dataclass(frozen=True)
class WorkflowColumn:
    """A board column holding the cards of one status."""

    id: str
    title: str
    status: CardStatus
    cards: tuple[WorkflowCard, ...] = ()
    max_cards: int | None = None  # WIP ceiling
    color: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], context: str = "column") -> WorkflowColumn:
        column_id = _require_str(data, "id", context)
        ctx = f"{context} '{column_id}'"
        max_cards_raw = data.get("max_cards")
        max_cards: int | None = None
        if max_cards_raw is not None:
            if isinstance(max_cards_raw, bool) or not isinstance(max_cards_raw, int):
                msg = f"{ctx}: max_cards must be an integer, got {max_cards_raw!r}"
                raise ValueError(msg)
            max_cards = max_cards_raw
        return cls(
            id=column_id,
            title=str(data.get("title", column_id)),
            status=_require_status(data, "status", ctx),
            cards=tuple(
                WorkflowCard.from_dict(c, f"{ctx} card")
                for c in _list_of_mappings(data, "cards", ctx)
            ),
            max_cards=max_cards,
            color=_optional_str(data.get("color")),
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "status": self.status.value,
            "cards": [c.to_dict() for c in self.cards],
        }
        if self.max_cards is not None:
            result["max_cards"] = self.max_cards
        if self.color is not None:
            result["color"] = self.color
        return result


def _flag(settings: Mapping[str, Any], key: str) -> bool:
    value = settings.get(key, False)
    if not isinstance(value, bool):
        logger.warning("Board setting '%s' must be a boolean, got %r; using false", key, value)
        return False
    return value


# camelCase keys used by the board's JSON API, accepted as aliases.
_SETTINGS_ALIASES: dict[str, str] = {
    "allowSkipStages": "allow_skip_stages",
    "requireReviewers": "require_reviewers",
    "minReviewers": "min_reviewers",
    "enforceWipLimits": "enforce_wip_limits",
}


@dataclass(frozen=True)
class BoardSettings:
    """Per-board rule configuration, supplied fresh for every evaluation."""

    allow_skip_stages: bool = False
    require_reviewers: bool = False
    min_reviewers: int = 0
    enforce_wip_limits: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> BoardSettings:
        """Build settings from a possibly empty or partial mapping.

        Missing or unusable values fall back to the permissive defaults
        instead of raising.
        """
        if not data:
            return cls()
        normalized: dict[str, Any] = {}
        for key, value in data.items():
            normalized[_SETTINGS_ALIASES.get(str(key), str(key))] = value

        min_reviewers_raw = normalized.get("min_reviewers")
        try:
            min_reviewers = int(min_reviewers_raw) if min_reviewers_raw is not None else 0
        except (TypeError, ValueError):
            min_reviewers = 0

        return cls(
            allow_skip_stages=_flag(normalized, "allow_skip_stages"),
            require_reviewers=_flag(normalized, "require_reviewers"),
            min_reviewers=max(min_reviewers, 0),
            enforce_wip_limits=_flag(normalized, "enforce_wip_limits"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "allow_skip_stages": self.allow_skip_stages,
            "require_reviewers": self.require_reviewers,
            "min_reviewers": self.min_reviewers,
            "enforce_wip_limits": self.enforce_wip_limits,
        }


@dataclass(frozen=True)
class WorkflowBoard:
    """Snapshot of a whole board."""

    id: str
    title: str
    columns: tuple[WorkflowColumn, ...]
    settings: BoardSettings = field(default_factory=BoardSettings)
    description: str = ""
    members: tuple[User, ...] = ()

    def all_cards(self) -> list[WorkflowCard]:
        return [card for column in self.columns for card in column.cards]

    def find_card(self, card_id: str) -> WorkflowCard | None:
        for column in self.columns:
            for card in column.cards:
                if card.id == card_id:
                    return card
        return None

    def column_for_status(self, status: CardStatus) -> WorkflowColumn | None:
        for column in self.columns:
            if column.status == status:
                return column
        return None

    def column_of_card(self, card_id: str) -> WorkflowColumn | None:
        for column in self.columns:
            if any(card.id == card_id for card in column.cards):
                return column
        return None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WorkflowBoard:
        board_id = _require_str(data, "id", "board")
        ctx = f"board '{board_id}'"

        settings_raw = data.get("settings")
        if settings_raw is not None and not isinstance(settings_raw, Mapping):
            msg = f"{ctx}: 'settings' must be a mapping"
            raise ValueError(msg)

        columns = tuple(
            WorkflowColumn.from_dict(c, f"{ctx} column")
            for c in _list_of_mappings(data, "columns", ctx)
        )

        seen_statuses: set[CardStatus] = set()
        seen_cards: set[str] = set()
        for column in columns:
            if column.status in seen_statuses:
                msg = f"{ctx}: duplicate column for status '{column.status.value}'"
                raise ValueError(msg)
            seen_statuses.add(column.status)
            for card in column.cards:
                if card.id in seen_cards:
                    msg = f"{ctx}: duplicate card id '{card.id}'"
                    raise ValueError(msg)
                seen_cards.add(card.id)
                if card.status != column.status:
                    msg = (
                        f"{ctx}: card '{card.id}' has status '{card.status.value}' "
                        f"but sits in column '{column.id}' ({column.status.value})"
                    )
                    raise ValueError(msg)

        return cls(
            id=board_id,
            title=str(data.get("title", board_id)),
            description=str(data.get("description", "")),
            columns=columns,
            settings=BoardSettings.from_mapping(settings_raw),
            members=tuple(
                User.from_dict(m, f"{ctx} member")
                for m in _list_of_mappings(data, "members", ctx)
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "settings": self.settings.to_dict(),
            "members": [m.to_dict() for m in self.members],
            "columns": [c.to_dict() for c in self.columns],
        }
