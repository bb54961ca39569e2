"""Tests for flowgate.engine.toggles: toggle store, default store, settings file."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import pytest
import yaml

from flowgate.engine.toggles import (
    DEFAULT_RULE_STATE,
    RuleToggleState,
    RuleToggleStore,
    get_default_store,
    load_rule_settings,
    save_rule_settings,
    set_default_store,
)

if TYPE_CHECKING:
    from pathlib import Path

    from flowgate.notifications import RuleChangeNotification


class TestRuleToggleStore:
    def test_defaults(self) -> None:
        store = RuleToggleStore()
        assert store.is_dependency_check_enabled is True
        assert store.is_reviewer_check_enabled is True
        assert store.snapshot() == RuleToggleState()

    def test_toggle_dependency(self) -> None:
        store = RuleToggleStore()
        state = store.toggle_dependency_check()
        assert state.dependency_check_enabled is False
        assert state.reviewer_check_enabled is True
        assert store.is_dependency_check_enabled is False
        store.toggle_dependency_check()
        assert store.is_dependency_check_enabled is True

    def test_toggle_reviewer(self) -> None:
        store = RuleToggleStore()
        store.toggle_reviewer_check()
        assert store.is_reviewer_check_enabled is False
        assert store.is_dependency_check_enabled is True

    def test_toggle_by_name(self) -> None:
        store = RuleToggleStore()
        assert store.toggle("reviewer").reviewer_check_enabled is False

    def test_toggle_unknown_rule(self) -> None:
        with pytest.raises(ValueError, match="Unknown rule"):
            RuleToggleStore().toggle("wip")

    def test_reset(self) -> None:
        store = RuleToggleStore(RuleToggleState(False, False))
        assert store.reset_to_defaults() == DEFAULT_RULE_STATE
        assert store.snapshot() == DEFAULT_RULE_STATE

    def test_snapshot_is_stable_across_toggles(self) -> None:
        store = RuleToggleStore()
        before = store.snapshot()
        store.toggle_dependency_check()
        assert before.dependency_check_enabled is True

    def test_listener_receives_change(self) -> None:
        store = RuleToggleStore()
        received: list[RuleChangeNotification] = []
        store.subscribe(received.append)

        store.toggle_dependency_check()

        assert len(received) == 1
        change = received[0]
        assert change.rule == "dependency"
        assert change.enabled is False
        assert change.message.type == "warning"
        assert change.impact

    def test_unsubscribe(self) -> None:
        store = RuleToggleStore()
        received: list[RuleChangeNotification] = []
        store.subscribe(received.append)
        store.unsubscribe(received.append)
        store.toggle_reviewer_check()
        assert received == []

    def test_failing_listener_does_not_block_others(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        store = RuleToggleStore()
        received: list[RuleChangeNotification] = []

        def broken(change: RuleChangeNotification) -> None:
            msg = "display unavailable"
            raise RuntimeError(msg)

        store.subscribe(broken)
        store.subscribe(received.append)

        with caplog.at_level(logging.ERROR, logger="flowgate.engine.toggles"):
            state = store.toggle_reviewer_check()

        assert state.reviewer_check_enabled is False
        assert len(received) == 1
        assert "listener" in caplog.text
        assert "display unavailable" in caplog.text

    def test_toggle_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.INFO, logger="flowgate.engine.toggles"):
            RuleToggleStore().toggle_reviewer_check()
        assert "ON -> OFF" in caplog.text

    def test_concurrent_toggles_are_serialized(self) -> None:
        store = RuleToggleStore()
        rounds = 200

        def worker() -> None:
            for _ in range(rounds):
                store.toggle_dependency_check()

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        # 800 flips in total: an even number leaves the check enabled.
        assert store.is_dependency_check_enabled is True


class TestDefaultStore:
    def test_singleton(self) -> None:
        assert get_default_store() is get_default_store()

    def test_replace_and_reset(self) -> None:
        custom = RuleToggleStore(RuleToggleState(dependency_check_enabled=False))
        set_default_store(custom)
        assert get_default_store() is custom
        set_default_store(None)
        assert get_default_store() is not custom
        assert get_default_store().is_dependency_check_enabled is True


class TestRuleSettingsFile:
    def test_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / ".flowgate" / "rules.yml"
        state = RuleToggleState(dependency_check_enabled=False, reviewer_check_enabled=True)
        save_rule_settings(path, state)
        assert load_rule_settings(path) == state

    def test_saved_document_fields(self, tmp_path: Path) -> None:
        path = tmp_path / "rules.yml"
        now = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        save_rule_settings(path, RuleToggleState(), now=now)
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        assert data["version"] == "1.0.0"
        assert data["dependency_check_enabled"] is True
        assert data["reviewer_check_enabled"] is True
        assert "2026-01-02T03:04:05" in str(data["last_updated"])

    def test_missing_file(self, tmp_path: Path) -> None:
        assert load_rule_settings(tmp_path / "nope.yml") == DEFAULT_RULE_STATE

    def test_invalid_yaml_falls_back(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        path = tmp_path / "rules.yml"
        path.write_text("dependency_check_enabled: [unclosed\n", encoding="utf-8")
        with caplog.at_level(logging.WARNING):
            assert load_rule_settings(path) == DEFAULT_RULE_STATE
        assert "using default rule settings" in caplog.text

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "rules.yml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        assert load_rule_settings(path) == DEFAULT_RULE_STATE

    def test_wrong_type_falls_back(self, tmp_path: Path) -> None:
        path = tmp_path / "rules.yml"
        path.write_text(
            "dependency_check_enabled: 'no'\nreviewer_check_enabled: false\n",
            encoding="utf-8",
        )
        assert load_rule_settings(path) == DEFAULT_RULE_STATE

    def test_unsupported_version(self, tmp_path: Path) -> None:
        path = tmp_path / "rules.yml"
        path.write_text(
            "version: '9.0.0'\ndependency_check_enabled: false\n", encoding="utf-8"
        )
        assert load_rule_settings(path) == DEFAULT_RULE_STATE

    def test_partial_file_keeps_other_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "rules.yml"
        path.write_text("reviewer_check_enabled: false\n", encoding="utf-8")
        state = load_rule_settings(path)
        assert state.dependency_check_enabled is True
        assert state.reviewer_check_enabled is False

    def test_store_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "rules.yml"
        save_rule_settings(path, RuleToggleState(reviewer_check_enabled=False))
        store = RuleToggleStore.from_file(path)
        assert store.is_reviewer_check_enabled is False
