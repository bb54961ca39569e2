"""Tests for flowgate.engine.validators: the individual rule checks."""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

import pytest

from conftest import DEP_DONE, DEP_PENDING, REVIEWER_A, REVIEWER_B
from flowgate.engine.validators import (
    RuleEngineError,
    validate_basic_rules,
    validate_dependencies,
    validate_reviewers,
    validate_role_permissions,
    validate_state_transition,
    validate_wip_limits,
)
from flowgate.model import BoardSettings, CardStatus, Dependency, UserRole

if TYPE_CHECKING:
    from flowgate.model import WorkflowCard

CardFactory = Callable[..., "WorkflowCard"]


class TestValidateBasicRules:
    def test_valid_request(self, make_card: CardFactory) -> None:
        verdict = validate_basic_rules(make_card(), "backlog", "in_progress", "developer")
        assert verdict.allowed is True

    def test_none_card(self) -> None:
        with pytest.raises(RuleEngineError, match="card is required"):
            validate_basic_rules(None, "backlog", "in_progress", "developer")

    def test_enum_and_string_compare_equal(self, make_card: CardFactory) -> None:
        verdict = validate_basic_rules(make_card(), CardStatus.BACKLOG, "backlog", "developer")
        assert verdict.allowed is False
        assert verdict.rule == "basic"

    def test_noop_checked_before_invalid_status(self, make_card: CardFactory) -> None:
        verdict = validate_basic_rules(make_card(), "nowhere", "nowhere", "developer")
        assert "no-op" in (verdict.reason or "").lower()

    def test_invalid_from_status(self, make_card: CardFactory) -> None:
        verdict = validate_basic_rules(make_card(), "icebox", "in_progress", "developer")
        assert verdict.allowed is False
        assert "invalid status" in (verdict.reason or "").lower()

    def test_non_string_role(self, make_card: CardFactory) -> None:
        verdict = validate_basic_rules(make_card(), "backlog", "in_progress", None)  # type: ignore[arg-type]
        assert verdict.allowed is False
        assert "invalid role" in (verdict.reason or "").lower()


class TestValidateStateTransition:
    def test_adjacent(self) -> None:
        verdict = validate_state_transition(
            CardStatus.QA_DONE, CardStatus.READY_FOR_DEPLOY, BoardSettings()
        )
        assert verdict.allowed is True

    def test_skip_denied(self) -> None:
        verdict = validate_state_transition(
            CardStatus.IN_PROGRESS, CardStatus.DONE, BoardSettings()
        )
        assert verdict.allowed is False
        assert "in_progress -> done" in (verdict.reason or "")

    def test_skip_allowed_by_board(self) -> None:
        verdict = validate_state_transition(
            CardStatus.BACKLOG, CardStatus.DONE, BoardSettings(allow_skip_stages=True)
        )
        assert verdict.allowed is True


class TestValidateRolePermissions:
    @pytest.mark.parametrize(
        "target",
        [CardStatus.BACKLOG, CardStatus.IN_PROGRESS, CardStatus.READY_FOR_QA, CardStatus.QA_DONE],
    )
    def test_developer_targets(self, target: CardStatus) -> None:
        assert validate_role_permissions(target, UserRole.DEVELOPER).allowed

    @pytest.mark.parametrize("target", list(CardStatus))
    def test_product_owner_targets(self, target: CardStatus) -> None:
        assert validate_role_permissions(target, UserRole.PRODUCT_OWNER).allowed

    def test_done_reason_is_distinct(self) -> None:
        done = validate_role_permissions(CardStatus.DONE, UserRole.DEVELOPER)
        deploy = validate_role_permissions(CardStatus.READY_FOR_DEPLOY, UserRole.DEVELOPER)
        assert done.reason != deploy.reason
        assert "product owner" in (done.reason or "")
        assert done.details == {"role": "developer"}


class TestValidateDependencies:
    def test_empty(self) -> None:
        result = validate_dependencies([])
        assert result.is_valid is True
        assert result.pending_dependencies == ()

    def test_none(self) -> None:
        assert validate_dependencies(None).is_valid is True

    def test_all_done(self) -> None:
        result = validate_dependencies([DEP_DONE])
        assert result.is_valid is True

    def test_pending_is_reported(self) -> None:
        result = validate_dependencies([DEP_DONE, DEP_PENDING])
        assert result.is_valid is False
        assert [d.title for d in result.pending_dependencies] == ["Unfinished dependency"]

    def test_ready_for_deploy_is_still_pending(self) -> None:
        staged = Dependency(id="dep-4", title="Staged", status=CardStatus.READY_FOR_DEPLOY)
        result = validate_dependencies([staged])
        assert result.is_valid is False

    def test_done_counts_as_complete(self) -> None:
        shipped = Dependency(id="dep-5", title="Shipped", status=CardStatus.DONE)
        assert validate_dependencies([shipped]).is_valid is True

    def test_optional_never_pending(self) -> None:
        optional = Dependency(id="dep-6", title="Optional", status=CardStatus.BACKLOG,
                              required=False)
        assert validate_dependencies([optional]).is_valid is True

    def test_circular_reported_separately(self) -> None:
        itself = Dependency(id="card-1", title="Me", status=CardStatus.IN_PROGRESS)
        result = validate_dependencies([itself, DEP_PENDING], "card-1")
        assert result.is_valid is False
        assert result.circular_dependencies == ("card-1",)
        assert result.pending_dependencies == ()

    def test_no_owner_means_no_circular_check(self) -> None:
        itself = Dependency(id="card-1", title="Me", status=CardStatus.DONE)
        result = validate_dependencies([itself])
        assert result.is_valid is True
        assert result.circular_dependencies == ()


class TestValidateReviewers:
    def test_enough(self, settings: BoardSettings) -> None:
        result = validate_reviewers([REVIEWER_A, REVIEWER_B], settings)
        assert result.is_valid is True
        assert result.current_count == 2
        assert result.required_count == 2

    def test_too_few(self, settings: BoardSettings) -> None:
        result = validate_reviewers([REVIEWER_A], settings)
        assert result.is_valid is False
        assert result.current_count == 1
        assert result.required_count == 2

    def test_not_required(self) -> None:
        result = validate_reviewers([], BoardSettings(require_reviewers=False, min_reviewers=3))
        assert result.is_valid is True
        assert result.required_count == 0

    def test_none_reviewers(self, settings: BoardSettings) -> None:
        result = validate_reviewers(None, settings)
        assert result.current_count == 0
        assert result.is_valid is False


class TestValidateWipLimits:
    def test_no_limit(self, make_card: CardFactory) -> None:
        cards = [make_card(id=f"c{i}") for i in range(10)]
        assert validate_wip_limits(cards, None).allowed
        assert validate_wip_limits(cards, 0).allowed
        assert validate_wip_limits(cards, -1).allowed

    def test_adding_within_limit(self, make_card: CardFactory) -> None:
        cards = [make_card(id="c1")]
        assert validate_wip_limits(cards, 2, is_adding_card=True).allowed

    def test_adding_over_limit(self, make_card: CardFactory) -> None:
        cards = [make_card(id="c1"), make_card(id="c2")]
        verdict = validate_wip_limits(cards, 2, is_adding_card=True)
        assert verdict.allowed is False
        assert "at most 2" in (verdict.reason or "")
        assert verdict.rule == "wip"

    def test_not_adding_at_limit(self, make_card: CardFactory) -> None:
        cards = [make_card(id="c1"), make_card(id="c2")]
        assert validate_wip_limits(cards, 2, is_adding_card=False).allowed
