"""Rule engine: validators, move evaluation, and rule toggles."""

from flowgate.engine.rule_engine import can_move
from flowgate.engine.toggles import (
    RULE_METADATA,
    RuleMetadata,
    RuleToggleState,
    RuleToggleStore,
    get_default_store,
    load_rule_settings,
    save_rule_settings,
    set_default_store,
)
from flowgate.engine.validators import (
    DependencyValidationResult,
    MoveVerdict,
    ReviewerValidationResult,
    RuleEngineError,
    validate_basic_rules,
    validate_dependencies,
    validate_reviewers,
    validate_role_permissions,
    validate_state_transition,
    validate_wip_limits,
)

__all__ = [
    "RULE_METADATA",
    "DependencyValidationResult",
    "MoveVerdict",
    "ReviewerValidationResult",
    "RuleEngineError",
    "RuleMetadata",
    "RuleToggleState",
    "RuleToggleStore",
    "can_move",
    "get_default_store",
    "load_rule_settings",
    "save_rule_settings",
    "set_default_store",
    "validate_basic_rules",
    "validate_dependencies",
    "validate_reviewers",
    "validate_role_permissions",
    "validate_state_transition",
    "validate_wip_limits",
]
