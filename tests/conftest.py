"""Shared test fixtures for Flowgate."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable

import pytest

from flowgate.engine.toggles import set_default_store
from flowgate.model import (
    BoardSettings,
    CardStatus,
    Dependency,
    User,
    UserRole,
    WorkflowCard,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


DEVELOPER = User(id="dev-1", name="Dana Developer", email="dev@test.com")
REVIEWER_A = User(id="rev-1", name="Rita Reviewer", email="rev1@test.com")
REVIEWER_B = User(id="rev-2", name="Rob Reviewer", email="rev2@test.com")
PRODUCT_OWNER = User(
    id="po-1", name="Paula Owner", email="po@test.com", role=UserRole.PRODUCT_OWNER
)

DEP_DONE = Dependency(id="dep-1", title="Finished dependency", status=CardStatus.QA_DONE)
DEP_PENDING = Dependency(id="dep-2", title="Unfinished dependency", status=CardStatus.IN_PROGRESS)


@pytest.fixture(autouse=True)
def _fresh_default_store() -> Iterator[None]:
    """Every test starts and ends with a fresh process-wide toggle store."""
    set_default_store(None)
    yield
    set_default_store(None)


@pytest.fixture()
def settings() -> BoardSettings:
    """Strict board settings: no skipping, 2 reviewers, WIP on."""
    return BoardSettings(
        allow_skip_stages=False,
        require_reviewers=True,
        min_reviewers=2,
        enforce_wip_limits=True,
    )


@pytest.fixture()
def make_card() -> Callable[..., WorkflowCard]:
    """Factory for cards with sensible defaults; keyword overrides replace fields."""

    def _make(**overrides: Any) -> WorkflowCard:
        fields: dict[str, Any] = {
            "id": "card-1",
            "title": "Test card",
            "description": "A card for testing",
            "status": CardStatus.BACKLOG,
            "assignee": DEVELOPER,
            "created_at": "2025-01-01T00:00:00+00:00",
            "updated_at": "2025-01-01T00:00:00+00:00",
        }
        fields.update(overrides)
        for key in ("reviewers", "dependencies", "tags"):
            if key in fields:
                fields[key] = tuple(fields[key])
        return WorkflowCard(**fields)

    return _make


BOARD_YAML = """\
id: board-1
title: Delivery board
description: Team delivery workflow
settings:
  allow_skip_stages: false
  require_reviewers: true
  min_reviewers: 2
  enforce_wip_limits: true
members:
  - { id: dev-1, name: Dana Developer, email: dev@test.com, role: developer }
  - { id: po-1, name: Paula Owner, email: po@test.com, role: product_owner }
columns:
  - id: col-1
    title: Backlog
    status: backlog
    cards:
      - id: card-api
        title: Build API
        status: backlog
        assignee: { id: dev-1, name: Dana Developer, role: developer }
  - id: col-2
    title: In Progress
    status: in_progress
    max_cards: 3
    cards:
      - id: card-auth
        title: Auth flow
        status: in_progress
        priority: high
        assignee: { id: dev-1, name: Dana Developer, role: developer }
        reviewers:
          - { id: rev-1, name: Rita Reviewer }
          - { id: rev-2, name: Rob Reviewer }
      - id: card-ui
        title: Login screen
        status: in_progress
        assignee: { id: dev-1, name: Dana Developer, role: developer }
        reviewers:
          - { id: rev-1, name: Rita Reviewer }
          - { id: rev-2, name: Rob Reviewer }
        dependencies:
          - { id: card-auth, title: Auth flow, status: in_progress, required: true }
  - id: col-3
    title: Ready for QA
    status: ready_for_qa
    max_cards: 1
    cards: []
  - id: col-4
    title: QA Done
    status: qa_done
    cards: []
  - id: col-5
    title: Ready for Deploy
    status: ready_for_deploy
    cards:
      - id: card-release
        title: Release notes
        status: ready_for_deploy
        assignee: { id: dev-1, name: Dana Developer, role: developer }
  - id: col-6
    title: Done
    status: done
    cards: []
"""


@pytest.fixture()
def board_file(tmp_path: Path) -> Path:
    """Write the sample board snapshot and return its path."""
    path = tmp_path / "board.yml"
    path.write_text(BOARD_YAML, encoding="utf-8")
    return path
