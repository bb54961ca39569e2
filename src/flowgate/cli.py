"""Flowgate CLI entry point."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click

from flowgate import __version__
from flowgate.engine.toggles import DEFAULT_SETTINGS_PATH, VALID_RULE_TYPES
from flowgate.model import CardStatus, UserRole

if TYPE_CHECKING:
    from flowgate.engine.validators import MoveVerdict
    from flowgate.model import WorkflowBoard

_STATUS_CHOICE = click.Choice([s.value for s in CardStatus])
_ROLE_CHOICE = click.Choice([r.value for r in UserRole])


@click.group()
@click.version_option(version=__version__, prog_name="flowgate")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output (errors only).")
@click.option(
    "--settings",
    "settings_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help=f"Rule settings file (default: {DEFAULT_SETTINGS_PATH}).",
)
@click.pass_context
def main(ctx: click.Context, *, verbose: bool, quiet: bool, settings_path: Path | None) -> None:
    """Flowgate - workflow card-move rule engine."""
    level = logging.DEBUG if verbose else logging.ERROR if quiet else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["settings_path"] = settings_path or Path.cwd() / DEFAULT_SETTINGS_PATH


def _load_board_or_exit(path: Path) -> WorkflowBoard:
    from flowgate.board import BoardFileError, load_board

    try:
        return load_board(path)
    except BoardFileError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)


def _verdict_to_dict(verdict: MoveVerdict) -> dict[str, object]:
    from dataclasses import asdict

    return asdict(verdict)


# ---------------------------------------------------------------------------
# Move evaluation
# ---------------------------------------------------------------------------


@main.command()
@click.argument("board_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("card_id")
@click.argument("to_status", type=_STATUS_CHOICE)
@click.option("--role", type=_ROLE_CHOICE, required=True, help="Role of the acting user.")
@click.option("--json", "as_json", is_flag=True, help="Structured JSON output.")
@click.pass_context
def check(
    ctx: click.Context,
    *,
    board_path: Path,
    card_id: str,
    to_status: str,
    role: str,
    as_json: bool,
) -> None:
    """Check whether a card may move to TO_STATUS.

    Exit codes: 0 = allowed, 1 = denied, 2 = configuration error.
    """
    from flowgate.engine.rule_engine import can_move
    from flowgate.engine.toggles import load_rule_settings
    from flowgate.notifications import notify_move_result, render_notification

    board = _load_board_or_exit(board_path)
    card = board.find_card(card_id)
    if card is None:
        click.echo(f"Error: card '{card_id}' not found on board '{board.id}'", err=True)
        sys.exit(2)

    toggles = load_rule_settings(ctx.obj["settings_path"])
    verdict = can_move(
        card,
        card.status,
        to_status,
        role,
        board.settings,
        toggles=toggles,
        target_column=board.column_for_status(CardStatus(to_status)),
    )

    if as_json:
        payload = {"card_id": card.id, "from": card.status.value, "to": to_status}
        payload.update(_verdict_to_dict(verdict))
        click.echo(json.dumps(payload, ensure_ascii=False, indent=2))
    elif not ctx.obj["quiet"]:
        from rich.console import Console

        notification = notify_move_result(card, card.status, to_status, verdict)
        render_notification(notification.message, Console())

    if not verdict.allowed:
        sys.exit(1)


@main.command()
@click.argument("board_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("card_id")
@click.argument("to_status", type=_STATUS_CHOICE)
@click.option("--role", type=_ROLE_CHOICE, required=True, help="Role of the acting user.")
@click.option("--actor", default=None, help="Board member id recorded in the activity log.")
@click.option("--dry-run", is_flag=True, help="Evaluate only, do not write the board.")
@click.pass_context
def move(
    ctx: click.Context,
    *,
    board_path: Path,
    card_id: str,
    to_status: str,
    role: str,
    actor: str | None,
    dry_run: bool,
) -> None:
    """Move a card to TO_STATUS and save the board when the rules allow it.

    Exit codes: 0 = moved, 1 = denied, 2 = configuration error.
    """
    from rich.console import Console

    from flowgate.board import dump_board, move_card
    from flowgate.engine.toggles import load_rule_settings
    from flowgate.notifications import render_notification

    board = _load_board_or_exit(board_path)

    actor_user = None
    if actor is not None:
        actor_user = next((m for m in board.members if m.id == actor), None)
        if actor_user is None:
            click.echo(f"Error: member '{actor}' not found on board '{board.id}'", err=True)
            sys.exit(2)

    toggles = load_rule_settings(ctx.obj["settings_path"])
    try:
        outcome = move_card(board, card_id, to_status, role, actor=actor_user, toggles=toggles)
    except LookupError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    if not ctx.obj["quiet"]:
        render_notification(outcome.notification.message, Console())

    if not outcome.verdict.allowed:
        sys.exit(1)

    if dry_run:
        click.echo("Dry run: board not written.")
        return
    dump_board(outcome.board, board_path)


@main.command()
def transitions() -> None:
    """Show allowed stage transitions and role permissions."""
    from rich.console import Console
    from rich.table import Table

    from flowgate.model import ROLE_PERMISSIONS, STATUS_TRANSITIONS
    from flowgate.notifications import display_name

    console = Console()

    table = Table(title="Stage transitions", box=None, padding=(0, 1))
    table.add_column("From", style="cyan")
    table.add_column("To")
    for status, targets in STATUS_TRANSITIONS.items():
        table.add_row(
            display_name(status),
            ", ".join(display_name(t) for t in targets) or "(terminal)",
        )
    console.print(table)
    console.print()

    roles = Table(title="Role permissions", box=None, padding=(0, 1))
    roles.add_column("Role", style="cyan")
    roles.add_column("May move cards to")
    for role, permissions in ROLE_PERMISSIONS.items():
        allowed = [display_name(s) for s in CardStatus if s in permissions.can_move_to_status]
        roles.add_row(role.value, ", ".join(allowed))
    console.print(roles)


# ---------------------------------------------------------------------------
# Rule toggles
# ---------------------------------------------------------------------------


@main.group()
def rules() -> None:
    """Inspect and change the optional rule checks."""


@rules.command("show")
@click.option("--json", "as_json", is_flag=True, help="Structured JSON output.")
@click.pass_context
def rules_show(ctx: click.Context, *, as_json: bool) -> None:
    """Show which optional rule checks are enabled."""
    from flowgate.engine.toggles import RULE_METADATA, load_rule_settings

    state = load_rule_settings(ctx.obj["settings_path"])
    if as_json:
        data = {rule: state.is_enabled(rule) for rule in sorted(VALID_RULE_TYPES)}
        click.echo(json.dumps(data, indent=2))
        return

    from rich.console import Console
    from rich.table import Table

    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("rule", style="cyan")
    table.add_column("state")
    table.add_column("effect")
    for rule in sorted(VALID_RULE_TYPES):
        enabled = state.is_enabled(rule)
        metadata = RULE_METADATA[rule]
        table.add_row(
            metadata.name,
            "[green]ON[/]" if enabled else "[yellow]OFF[/]",
            metadata.enabled_description if enabled else metadata.disabled_description,
        )
    Console().print(table)


@rules.command("toggle")
@click.argument("rule", type=click.Choice(sorted(VALID_RULE_TYPES)))
@click.pass_context
def rules_toggle(ctx: click.Context, *, rule: str) -> None:
    """Flip RULE on or off and save the settings."""
    from rich.console import Console

    from flowgate.engine.toggles import RuleToggleStore, save_rule_settings
    from flowgate.notifications import render_notification

    settings_path: Path = ctx.obj["settings_path"]
    store = RuleToggleStore.from_file(settings_path)
    console = Console()
    if not ctx.obj["quiet"]:
        store.subscribe(lambda change: render_notification(change.message, console))

    state = store.toggle(rule)
    save_rule_settings(settings_path, state)


@rules.command("reset")
@click.pass_context
def rules_reset(ctx: click.Context) -> None:
    """Reset all rule checks to their defaults (all enabled)."""
    from flowgate.engine.toggles import RuleToggleStore, save_rule_settings

    settings_path: Path = ctx.obj["settings_path"]
    store = RuleToggleStore.from_file(settings_path)
    state = store.reset_to_defaults()
    save_rule_settings(settings_path, state)
    if not ctx.obj["quiet"]:
        click.echo("Rule settings reset to defaults.")
