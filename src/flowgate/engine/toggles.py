"""Rule toggle store: which optional rule checks are active, and their settings file.

The store is the only process-wide mutable state of the engine.  Mutations
are serialized by a lock; readers take an immutable :class:`RuleToggleState`
snapshot and pass it to :func:`flowgate.engine.rule_engine.can_move`.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable

import yaml

if TYPE_CHECKING:
    from pathlib import Path

    from flowgate.notifications import RuleChangeNotification

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

RULE_SETTINGS_VERSION = "1.0.0"
DEFAULT_SETTINGS_PATH = ".flowgate/rules.yml"

RULE_DEPENDENCY = "dependency"
RULE_REVIEWER = "reviewer"
VALID_RULE_TYPES: frozenset[str] = frozenset({RULE_DEPENDENCY, RULE_REVIEWER})


@dataclass(frozen=True)
class RuleMetadata:
    """Display metadata for a togglable rule."""

    id: str
    name: str
    description: str
    enabled_description: str
    disabled_description: str


RULE_METADATA: dict[str, RuleMetadata] = {
    RULE_DEPENDENCY: RuleMetadata(
        id=RULE_DEPENDENCY,
        name="Dependency check",
        description="Verifies that required dependencies are complete when a card moves.",
        enabled_description="A card can only be moved once its dependencies have passed QA.",
        disabled_description="Cards can be moved regardless of their dependencies.",
    ),
    RULE_REVIEWER: RuleMetadata(
        id=RULE_REVIEWER,
        name="Required reviewer check",
        description="Verifies the minimum number of reviewers before a QA request.",
        enabled_description="The board's minimum number of reviewers must be assigned "
        "before requesting QA.",
        disabled_description="QA can be requested without assigning reviewers.",
    ),
}


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RuleToggleState:
    """Immutable snapshot of the optional rule checks."""

    dependency_check_enabled: bool = True
    reviewer_check_enabled: bool = True

    def is_enabled(self, rule: str) -> bool:
        if rule == RULE_DEPENDENCY:
            return self.dependency_check_enabled
        if rule == RULE_REVIEWER:
            return self.reviewer_check_enabled
        msg = f"Unknown rule '{rule}', must be one of {sorted(VALID_RULE_TYPES)}"
        raise ValueError(msg)


DEFAULT_RULE_STATE = RuleToggleState()

RuleChangeListener = Callable[["RuleChangeNotification"], None]


def _on_off(value: bool) -> str:
    return "ON" if value else "OFF"


class RuleToggleStore:
    """Thread-safe holder of the current :class:`RuleToggleState`.

    Writers are serialized by an internal lock.  Reads return the current
    immutable state without locking, so a reader sees either the state
    before or after a toggle, never a mix.
    """

    def __init__(self, initial: RuleToggleState | None = None) -> None:
        self._state = initial if initial is not None else DEFAULT_RULE_STATE
        self._lock = threading.Lock()
        self._listeners: list[RuleChangeListener] = []

    @classmethod
    def from_file(cls, path: Path) -> RuleToggleStore:
        """Create a store restored from a settings file (defaults on any failure)."""
        return cls(load_rule_settings(path))

    # -- reads ---------------------------------------------------------------

    @property
    def is_dependency_check_enabled(self) -> bool:
        return self._state.dependency_check_enabled

    @property
    def is_reviewer_check_enabled(self) -> bool:
        return self._state.reviewer_check_enabled

    def snapshot(self) -> RuleToggleState:
        return self._state

    # -- listeners -----------------------------------------------------------

    def subscribe(self, listener: RuleChangeListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: RuleChangeListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    # -- writes --------------------------------------------------------------

    def toggle_dependency_check(self) -> RuleToggleState:
        """Flip the dependency check and notify subscribers."""
        return self._toggle(RULE_DEPENDENCY)

    def toggle_reviewer_check(self) -> RuleToggleState:
        """Flip the reviewer check and notify subscribers."""
        return self._toggle(RULE_REVIEWER)

    def toggle(self, rule: str) -> RuleToggleState:
        """Flip the check named *rule* (``dependency`` or ``reviewer``)."""
        if rule not in VALID_RULE_TYPES:
            msg = f"Unknown rule '{rule}', must be one of {sorted(VALID_RULE_TYPES)}"
            raise ValueError(msg)
        return self._toggle(rule)

    def reset_to_defaults(self) -> RuleToggleState:
        with self._lock:
            self._state = DEFAULT_RULE_STATE
        logger.info("Rule settings reset to defaults")
        return DEFAULT_RULE_STATE

    def _toggle(self, rule: str) -> RuleToggleState:
        from flowgate.notifications import create_rule_change_notification

        with self._lock:
            before = self._state
            enabled = not before.is_enabled(rule)
            if rule == RULE_DEPENDENCY:
                self._state = replace(before, dependency_check_enabled=enabled)
            else:
                self._state = replace(before, reviewer_check_enabled=enabled)
            after = self._state
            listeners = list(self._listeners)

        logger.info(
            "%s: %s -> %s",
            RULE_METADATA[rule].name,
            _on_off(not enabled),
            _on_off(enabled),
        )

        notification = create_rule_change_notification(rule, enabled)
        for listener in listeners:
            try:
                listener(notification)
            except Exception:
                logger.exception("Rule change listener %r failed", listener)
        return after


# ---------------------------------------------------------------------------
# Process-wide default store
# ---------------------------------------------------------------------------

_default_store: RuleToggleStore | None = None
_default_store_lock = threading.Lock()


def get_default_store() -> RuleToggleStore:
    """Return the process-wide store, creating it with defaults on first use."""
    global _default_store  # noqa: PLW0603
    with _default_store_lock:
        if _default_store is None:
            _default_store = RuleToggleStore()
        return _default_store


def set_default_store(store: RuleToggleStore | None) -> None:
    """Install *store* as the process-wide store (``None`` resets it)."""
    global _default_store  # noqa: PLW0603
    with _default_store_lock:
        _default_store = store


# ---------------------------------------------------------------------------
# Settings file
# ---------------------------------------------------------------------------


def load_rule_settings(path: Path) -> RuleToggleState:
    """Restore toggle state from a YAML settings file.

    Falls back to the defaults (and logs a warning) when the file is
    missing, unreadable, or malformed.  Never raises.
    """
    if not path.is_file():
        logger.debug("No rule settings at %s, using defaults", path)
        return DEFAULT_RULE_STATE

    try:
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, UnicodeDecodeError, yaml.YAMLError):
        logger.warning("Failed to read %s, using default rule settings", path)
        return DEFAULT_RULE_STATE

    if not isinstance(data, dict):
        logger.warning("%s is not a YAML mapping, using default rule settings", path)
        return DEFAULT_RULE_STATE

    version = data.get("version")
    if version is not None and str(version) != RULE_SETTINGS_VERSION:
        logger.warning(
            "%s has unsupported version %s (expected %s), using default rule settings",
            path,
            version,
            RULE_SETTINGS_VERSION,
        )
        return DEFAULT_RULE_STATE

    kwargs: dict[str, bool] = {}
    for key in ("dependency_check_enabled", "reviewer_check_enabled"):
        if key not in data:
            continue
        value = data[key]
        if not isinstance(value, bool):
            logger.warning(
                "%s: '%s' must be a boolean, using default rule settings", path, key
            )
            return DEFAULT_RULE_STATE
        kwargs[key] = value

    state = RuleToggleState(**kwargs)
    logger.debug(
        "Rule settings loaded: dependency=%s reviewer=%s",
        _on_off(state.dependency_check_enabled),
        _on_off(state.reviewer_check_enabled),
    )
    return state


def save_rule_settings(
    path: Path, state: RuleToggleState, *, now: datetime | None = None
) -> None:
    """Write *state* to a YAML settings file, creating parent directories."""
    timestamp = (now or datetime.now(tz=timezone.utc)).isoformat()
    document = {
        "dependency_check_enabled": state.dependency_check_enabled,
        "reviewer_check_enabled": state.reviewer_check_enabled,
        "last_updated": timestamp,
        "version": RULE_SETTINGS_VERSION,
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        yaml.safe_dump(document, fh, sort_keys=False)
