from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, TypeVar

import click

from .config import POSITIONS, ConfigError, PickemConfig
from .entries import EntryError, EntryStore, PlayerPick, TeamEntry
from .leaderboard import filter_entries
from .payments import InvalidPayment, PaymentLedger
from .service import PickemService, SubmissionClosed, picks_from_players
from .settings import AppSettings, get_settings
from .sleeper import Player, ProviderUnavailable, SleeperClient

T = TypeVar("T")

env_file_option = click.option(
    "--env-file",
    type=click.Path(path_type=Path, dir_okay=False, exists=False, readable=True),
    default=".env",
    show_default=True,
    help="Path to the .env file to load.",
)
config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False, exists=False, readable=True),
    default=None,
    help="Pool configuration file (defaults to PICKEM_CONFIG or config/pickem.yaml).",
)


def _configure_logging(settings: AppSettings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load(env_file: Path, config_path: Optional[Path]) -> Tuple[AppSettings, PickemConfig]:
    settings = get_settings(env_file)
    _configure_logging(settings)
    try:
        config = PickemConfig.load(config_path or settings.config_path)
    except (FileNotFoundError, ConfigError) as exc:
        raise click.ClickException(str(exc)) from exc
    return settings, config


def _store(settings: AppSettings, config: PickemConfig) -> EntryStore:
    return EntryStore(settings.entries_dir / f"{config.season}.json", config.max_teams_per_person, config.positions)


def _ledger(settings: AppSettings, config: PickemConfig) -> PaymentLedger:
    return PaymentLedger(settings.payments_dir / f"{config.season}.json")


def _run(
    settings: AppSettings,
    config: PickemConfig,
    action: Callable[[PickemService, SleeperClient], Awaitable[T]],
) -> T:
    async def runner() -> T:
        async with SleeperClient(settings, config) as client:
            service = PickemService(config, client, _store(settings, config))
            return await action(service, client)

    return asyncio.run(runner())


def _points(value: float) -> str:
    return f"{value:.1f}"


@click.group()
def cli() -> None:
    """NFL playoff pick'em pool CLI."""


@cli.command()
@env_file_option
@config_option
def env(env_file: Path, config_path: Optional[Path]) -> None:
    """Show the current environment and pool configuration."""

    settings, config = _load(env_file, config_path)
    rows = [
        ("DATA_ROOT", str(settings.data_root)),
        ("LOG_LEVEL", settings.log_level),
        ("PICKEM_CONFIG", str(config_path or settings.config_path)),
        ("SLEEPER_API_URL", settings.players_url),
        ("SLEEPER_STATS_URL", settings.stats_url),
        ("SEASON", f"{config.season} ({config.season_type})"),
        ("SCORING_WEEKS", ", ".join(str(week) for week in config.scoring_weeks)),
        ("PLAYOFF_TEAMS", ", ".join(sorted(config.playoff_teams))),
        ("ENTRY_FEE", f"{config.entry_fee:g}"),
        ("MAX_TEAMS", str(config.max_teams_per_person)),
        ("DEADLINE", config.submission_deadline.isoformat() if config.submission_deadline else ""),
    ]
    width = max(len(key) for key, _ in rows)
    for key, value in rows:
        click.echo(f"{key.ljust(width)} : {value}")


@cli.command("players")
@click.option("--position", type=click.Choice(POSITIONS, case_sensitive=False), required=True)
@click.option("--search", default="", help="Case-insensitive name substring.")
@env_file_option
@config_option
def players_command(position: str, search: str, env_file: Path, config_path: Optional[Path]) -> None:
    """Search players on playoff teams."""

    settings, config = _load(env_file, config_path)
    result = _run(settings, config, lambda service, _: service.search_players(position, search))
    if result.unavailable:
        raise click.ClickException("Player data is currently unavailable from Sleeper")
    if not result.players:
        click.echo("No players found")
        return
    for player in result.players:
        click.echo(f"{player.player_id:>8}  {player.name:<28} {player.team or '':<4} {player.position or ''}")


@cli.command("stats")
@click.argument("player_id")
@env_file_option
@config_option
def stats_command(player_id: str, env_file: Path, config_path: Optional[Path]) -> None:
    """Show a player's scoring-week points."""

    settings, config = _load(env_file, config_path)
    outcomes = _run(settings, config, lambda service, _: service.player_outcomes([player_id]))
    outcome = outcomes[player_id]
    for week, points in outcome.weekly.items():
        click.echo(f"Week {week:>2}: {_points(points)}")
    click.echo(f"Total  : {_points(outcome.points)} ({outcome.status.value})")


@cli.group()
def entries() -> None:
    """Submit, edit and list entries."""


async def _resolve_picks(
    client: SleeperClient, config: PickemConfig, selections: Dict[str, str]
) -> Dict[str, PlayerPick]:
    roster = await client.fetch_all_players()
    chosen: Dict[str, Player] = {}
    for position, player_id in selections.items():
        hint = f"--{position.lower()}"
        player = roster.get(player_id)
        if player is None:
            raise click.BadParameter(f"Unknown player id {player_id}", param_hint=hint)
        if player.position != position:
            raise click.BadParameter(f"{player.name} plays {player.position or 'no position'}, not {position}", param_hint=hint)
        if player.team not in config.playoff_teams:
            raise click.BadParameter(f"{player.name} is not on a playoff team", param_hint=hint)
        chosen[position] = player
    return picks_from_players(chosen)


def _save_lineup(
    settings: AppSettings,
    config: PickemConfig,
    selections: Dict[str, str],
    save: Callable[[PickemService, Dict[str, PlayerPick]], TeamEntry],
) -> TeamEntry:
    async def action(service: PickemService, client: SleeperClient) -> TeamEntry:
        picks = await _resolve_picks(client, config, selections)
        return save(service, picks)

    try:
        return _run(settings, config, action)
    except ProviderUnavailable as exc:
        raise click.ClickException(f"Could not look up players: {exc}") from exc
    except (EntryError, SubmissionClosed) as exc:
        raise click.ClickException(str(exc)) from exc


def _lineup_options(func: Callable[..., Any]) -> Callable[..., Any]:
    for position in reversed(POSITIONS):
        func = click.option(f"--{position.lower()}", required=True, help=f"Sleeper player id for the {position}.")(func)
    return func


@entries.command("add")
@click.option("--email", required=True)
@click.option("--name", default=None, help="Display name for the entrant.")
@click.option("--team-number", type=int, required=True)
@_lineup_options
@env_file_option
@config_option
def entries_add(
    email: str,
    name: Optional[str],
    team_number: int,
    qb: str,
    wr: str,
    rb: str,
    te: str,
    env_file: Path,
    config_path: Optional[Path],
) -> None:
    """Submit a new team."""

    settings, config = _load(env_file, config_path)
    entry = _save_lineup(
        settings,
        config,
        {"QB": qb, "WR": wr, "RB": rb, "TE": te},
        lambda service, picks: service.submit_entry(email, team_number, picks, owner_name=name),
    )
    submitted = len(_store(settings, config).list_entries_for_owner(entry.owner))
    click.echo(f"Team {entry.team_number} submitted for {entry.owner} ({submitted} of {config.max_teams_per_person})")


@entries.command("edit")
@click.option("--email", required=True)
@click.option("--team-number", type=int, required=True)
@_lineup_options
@env_file_option
@config_option
def entries_edit(
    email: str,
    team_number: int,
    qb: str,
    wr: str,
    rb: str,
    te: str,
    env_file: Path,
    config_path: Optional[Path],
) -> None:
    """Replace the four picks of an existing team."""

    settings, config = _load(env_file, config_path)
    entry = _save_lineup(
        settings,
        config,
        {"QB": qb, "WR": wr, "RB": rb, "TE": te},
        lambda service, picks: service.edit_entry(email, team_number, picks),
    )
    click.echo(f"Team {entry.team_number} updated for {entry.owner}")


@entries.command("list")
@click.option("--email", default=None, help="Only show this entrant's teams.")
@env_file_option
@config_option
def entries_list(email: Optional[str], env_file: Path, config_path: Optional[Path]) -> None:
    """List stored entries."""

    settings, config = _load(env_file, config_path)
    store = _store(settings, config)
    rows = store.list_entries_for_owner(email) if email else store.list_all_entries()
    if not rows:
        click.echo("No entries yet")
        return
    for entry in rows:
        lineup = ", ".join(f"{position} {pick.name or pick.player_id}" for position, pick in entry.picks.items())
        click.echo(f"#{entry.entry_id:<4} {entry.owner:<32} Team {entry.team_number}: {lineup}")


@cli.command("leaderboard")
@click.option("--email", default=None, help="Filter by entrant email.")
@click.option("--qb", default=None, help="Filter by QB name.")
@click.option("--wr", default=None, help="Filter by WR name.")
@click.option("--rb", default=None, help="Filter by RB name.")
@click.option("--te", default=None, help="Filter by TE name.")
@click.option(
    "--output",
    type=click.Path(path_type=Path, dir_okay=False, writable=True),
    default=None,
    help="Optional CSV export path.",
)
@env_file_option
@config_option
def leaderboard_command(
    email: Optional[str],
    qb: Optional[str],
    wr: Optional[str],
    rb: Optional[str],
    te: Optional[str],
    output: Optional[Path],
    env_file: Path,
    config_path: Optional[Path],
) -> None:
    """Rank every entry by total points."""

    settings, config = _load(env_file, config_path)
    board = _run(settings, config, lambda service, _: service.compute_leaderboard())
    rows = filter_entries(board.ranked_entries, email=email, qb=qb, wr=wr, rb=rb, te=te)

    summary = board.summary
    click.echo(
        f"{config.title} {config.season_label}".strip()
        + f" | weeks {', '.join(str(week) for week in config.scoring_weeks)}"
    )
    click.echo(
        f"Entries: {summary.entry_count}  Participants: {summary.unique_participant_count}  "
        f"Pot: ${summary.total_pot:g}  Top score: {_points(summary.top_score)}"
    )
    if not rows:
        click.echo("No entries yet")
    for item in rows:
        marker = " *" if item.score.degraded else ""
        click.echo(
            f"{item.rank:>4}  {item.entry.owner:<32} #{item.entry.team_number}  {_points(item.total):>7}{marker}"
        )
    for payout in board.payouts:
        click.echo(f"Payout {payout.place} ({payout.fraction:.0%}): ${payout.amount}")
    if board.degraded:
        click.echo("* some player stats could not be fetched and were scored as zero")

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        board.to_frame(rows).to_csv(output, index=False)
        click.echo(f"Leaderboard → {output} ({len(rows)} rows)")


@cli.command("teams")
@click.option("--email", required=True)
@env_file_option
@config_option
def teams_command(email: str, env_file: Path, config_path: Optional[Path]) -> None:
    """Show one entrant's teams with weekly player points and rank."""

    settings, config = _load(env_file, config_path)
    teams = _run(settings, config, lambda service, _: service.manager_teams(email))
    if not teams:
        click.echo(f"No teams found for {email}")
        return
    for team in teams:
        click.echo(
            f"Team {team.entry.team_number}: {_points(team.score.total)} pts, "
            f"rank {team.rank} of {team.total_entries}"
        )
        for position, pick in team.entry.picks.items():
            outcome = team.players.get(position)
            weekly = " ".join(
                f"W{week}:{_points(points)}" for week, points in (outcome.weekly.items() if outcome else [])
            )
            points = team.score.breakdown.get(position, 0.0)
            click.echo(f"  {position:<2} {pick.name:<28} {pick.team:<4} {_points(points):>6}  {weekly}")


@cli.group()
def payments() -> None:
    """Track entry fees paid per participant."""


@payments.command("record")
@click.option("--email", required=True)
@click.option("--teams-paid", type=int, required=True, help="Total teams this participant has paid for.")
@click.option("--notes", default=None)
@env_file_option
@config_option
def payments_record(
    email: str,
    teams_paid: int,
    notes: Optional[str],
    env_file: Path,
    config_path: Optional[Path],
) -> None:
    """Set how many teams a participant has paid for."""

    settings, config = _load(env_file, config_path)
    try:
        record = _ledger(settings, config).record_payment(email, teams_paid, notes)
    except InvalidPayment as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"{record.owner}: {record.teams_paid} teams paid (${record.teams_paid * config.entry_fee:g})")


@payments.command("list")
@click.option("--unpaid", is_flag=True, help="Only show participants with unpaid teams.")
@env_file_option
@config_option
def payments_list(unpaid: bool, env_file: Path, config_path: Optional[Path]) -> None:
    """Show teams created against teams paid for every participant."""

    settings, config = _load(env_file, config_path)
    participants = _ledger(settings, config).participants(_store(settings, config).list_all_entries())
    if unpaid:
        participants = [item for item in participants if item.outstanding]
    if not participants:
        click.echo("No participants yet")
        return
    for item in participants:
        due = item.outstanding * config.entry_fee
        notes = f"  {item.notes}" if item.notes else ""
        click.echo(
            f"{item.email:<32} {item.name or '':<20} created {item.teams_created}  "
            f"paid {item.teams_paid}  due ${due:g}{notes}"
        )
    created = sum(item.teams_created for item in participants)
    paid = sum(min(item.teams_paid, item.teams_created) for item in participants)
    click.echo(f"Paid: {paid} of {created} teams  Outstanding: ${(created - paid) * config.entry_fee:g}")
