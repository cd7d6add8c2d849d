import asyncio
import json
from typing import Optional
import typer
from rich.console import Console
from rich.table import Table
from signull.autoplay.runner import AutoPlayRunner
from signull.config import configure_logging, get_settings
from signull.game import selectors
from signull.game.errors import SignullError
from signull.game.insights import compute_insights
from signull.game.models import (
    ChangeSetter,
    Command,
    CreateSignull,
    DirectGuess,
    GameRoom,
    GameSettings,
    JoinRoom,
    LeaveRoom,
    Quorum,
    RemovePlayer,
    ReturnToLobby,
    SetPresence,
    SetSecretWord,
    StartGame,
    SubmitConnect,
    SubmitIntercept,
    UpdateSettings,
    VolunteerClueGiver,
)
from signull.game.rules import format_history
from signull.game.scoring import score_breakdown
from signull.players.factory import create_player
from signull.service.rooms import RoomService
from signull.storage.json_store import JsonRoomStore

app = typer.Typer(help="Signull: a cooperative word-guessing game engine.")
console = Console()

LEVEL_STYLES = {"info": "white", "success": "green", "warning": "yellow", "error": "red"}


def _player_option(required: bool = True):
    return typer.Option(
        ... if required else None,
        "--as",
        envvar="SIGNULL_PLAYER",
        help="Your player id (or set SIGNULL_PLAYER)",
    )


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show engine logs")):
    configure_logging("INFO" if verbose else None)


def _service() -> RoomService:
    settings = get_settings()
    return RoomService(JsonRoomStore(settings.data_dir), command_memory=settings.command_memory)


def _fail(error_code: Optional[str], message: Optional[str]):
    console.print(f"[red]Error ({error_code}): {message}[/red]")
    raise typer.Exit(code=1)


def _load(room_id: str) -> GameRoom:
    try:
        return asyncio.run(_service().get_room(room_id))
    except SignullError as e:
        _fail(e.code, e.message)


def _execute(room_id: str, command: Command) -> GameRoom:
    result = asyncio.run(_service().execute(room_id, command))
    if not result.ok:
        _fail(result.error_code, result.error_message)
    for entry in result.history:
        style = LEVEL_STYLES.get(entry.level, "white")
        console.print(f"[{style}]{entry.message}[/{style}]")
    for event in result.score_events:
        name = result.room.players[event.player_id].name if event.player_id in result.room.players else event.player_id
        console.print(f"[bold green]+{event.delta}[/bold green] {name} ({event.reason})")
    return result.room


def _current_reference_id(room_id: str, reference_id: Optional[str]) -> str:
    if reference_id:
        return reference_id
    room = _load(room_id)
    if room.current_reference is None:
        _fail("STALE_REFERENCE", "There is no active signull.")
    return room.current_reference.id


# ---- Room & roster ----

@app.command()
def create(
    room_id: str = typer.Argument(..., help="Room code"),
    name: str = typer.Option(..., help="Your display name"),
    player: Optional[str] = _player_option(required=False),
    threshold: Optional[int] = typer.Option(None, help="Percentage of guessers that must connect"),
    connects: Optional[int] = typer.Option(None, help="Fixed number of connects required instead"),
):
    """
    Opens a room. You become its host and setter.
    """
    settings = GameSettings(direct_guesses=get_settings().direct_guesses)
    if connects is not None:
        settings.quorum = Quorum(kind="count", value=connects)
    elif threshold is not None:
        settings.quorum = Quorum(kind="percentage", value=threshold)
    try:
        room = asyncio.run(_service().open_room(room_id, player or name, name, settings))
    except SignullError as e:
        _fail(e.code, e.message)
    console.print(f"[green]Room {room.room_id} is open.[/green] Share the code to invite guessers.")


@app.command()
def rooms():
    """
    Lists the rooms in the data directory.
    """
    for room_id in _service().store.list_room_ids():
        console.print(room_id)


@app.command()
def join(room_id: str, name: str = typer.Option(...), player: Optional[str] = _player_option(required=False)):
    _execute(room_id, JoinRoom(actor_id=player or name, name=name))


@app.command()
def leave(room_id: str, player: str = _player_option()):
    _execute(room_id, LeaveRoom(actor_id=player))


@app.command()
def presence(room_id: str, online: bool = typer.Option(True, "--online/--offline"), player: str = _player_option()):
    """
    Marks you connected or disconnected.
    """
    _execute(room_id, SetPresence(actor_id=player, online=online))


@app.command()
def kick(room_id: str, target: str, player: str = _player_option()):
    """
    Removes a player from the room (setter or host only).
    """
    _execute(room_id, RemovePlayer(actor_id=player, target_id=target))


@app.command()
def setter(room_id: str, target: str, player: str = _player_option()):
    """
    Hands the setter role to another player (lobby only).
    """
    _execute(room_id, ChangeSetter(actor_id=player, target_id=target))


@app.command()
def settings(
    room_id: str,
    player: str = _player_option(),
    threshold: Optional[int] = typer.Option(None, help="Percentage of guessers that must connect"),
    connects: Optional[int] = typer.Option(None, help="Fixed number of connects required"),
    prefix: Optional[bool] = typer.Option(None, "--prefix/--no-prefix", help="Signull words must use the revealed prefix"),
    max_players: Optional[int] = typer.Option(None, help="Room capacity (3-12)"),
    mode: Optional[str] = typer.Option(None, help="round_robin or signull"),
    direct_guesses: Optional[int] = typer.Option(None, help="Direct guesses per round (0-10)"),
    bonus: Optional[str] = typer.Option(None, help="End bonus policy: each or split"),
    exhaust_ends: Optional[bool] = typer.Option(
        None, "--exhaust-ends/--no-exhaust-ends", help="Running out of direct guesses ends the round"
    ),
):
    """
    Changes room settings (lobby only).
    """
    quorum_kind, quorum_value = None, None
    if connects is not None:
        quorum_kind, quorum_value = "count", connects
    elif threshold is not None:
        quorum_kind, quorum_value = "percentage", threshold
    try:
        command = UpdateSettings(
            actor_id=player,
            quorum_kind=quorum_kind,
            quorum_value=quorum_value,
            prefix_mode=prefix,
            max_players=max_players,
            play_mode=mode,
            direct_guesses=direct_guesses,
            end_bonus_policy=bonus,
            exhausted_guesses_end_game=exhaust_ends,
        )
    except ValueError as e:
        _fail("VALIDATION_ERROR", str(e))
    _execute(room_id, command)


# ---- Game flow ----

@app.command()
def start(room_id: str, player: str = _player_option()):
    _execute(room_id, StartGame(actor_id=player))


@app.command()
def setword(room_id: str, word: str, player: str = _player_option()):
    """
    Setter only: chooses the secret word.
    """
    _execute(room_id, SetSecretWord(actor_id=player, word=word))


@app.command()
def volunteer(room_id: str, player: str = _player_option()):
    """
    Claims the next signull (signull mode).
    """
    _execute(room_id, VolunteerClueGiver(actor_id=player))


@app.command()
def signull(room_id: str, word: str, clue: str, player: str = _player_option()):
    """
    Sends a signull: a reference word and a clue for it.
    """
    _execute(room_id, CreateSignull(actor_id=player, word=word, clue=clue))


@app.command()
def connect(
    room_id: str,
    guess: str,
    player: str = _player_option(),
    reference: Optional[str] = typer.Option(None, help="Signull id (defaults to the active one)"),
):
    _execute(room_id, SubmitConnect(actor_id=player, reference_id=_current_reference_id(room_id, reference), guess=guess))


@app.command()
def intercept(
    room_id: str,
    guess: str,
    player: str = _player_option(),
    reference: Optional[str] = typer.Option(None, help="Signull id (defaults to the active one)"),
):
    _execute(room_id, SubmitIntercept(actor_id=player, reference_id=_current_reference_id(room_id, reference), guess=guess))


@app.command()
def guess(room_id: str, word: str, player: str = _player_option()):
    """
    Guesses the secret word outright, using one shared direct guess.
    """
    _execute(room_id, DirectGuess(actor_id=player, word=word))


@app.command()
def lobby(room_id: str, player: str = _player_option()):
    """
    Returns an ended room to the lobby for another round.
    """
    _execute(room_id, ReturnToLobby(actor_id=player))


# ---- Queries ----

@app.command()
def status(room_id: str, player: Optional[str] = _player_option(required=False)):
    """
    Shows the room as you are allowed to see it.
    """
    room = _load(room_id)
    doc = selectors.public_document(room, player)

    console.print(f"[bold]Room {room.room_id}[/bold]  phase: [cyan]{room.phase}[/cyan]  round: {room.round_number}")
    if room.secret_word:
        console.print(f"Word: [bold]{doc['secretWord']}[/bold] ({len(room.secret_word)} letters)")
        console.print(f"Direct guesses left: {room.direct_guesses_left}")
    if room.winner:
        console.print(f"[green]Winner: {room.winner}[/green]")

    giver = room.players.get(room.rotation.clue_giver_id) if room.rotation.clue_giver_id else None
    if room.phase == "guessing":
        console.print(f"Clue giver: {giver.name if giver else '[yellow]open[/yellow]'}")

    ref = room.current_reference
    if ref:
        author = room.players[ref.clue_giver_id].name if ref.clue_giver_id in room.players else ref.clue_giver_id
        console.print(f"Active signull [cyan]{ref.id}[/cyan] from {author}: \"{ref.clue}\"")
        if doc["currentReference"]["word"]:
            console.print(f"  word: {doc['currentReference']['word']}")
        console.print(
            f"  {len(ref.correct_connects)}/{ref.required_connects} connects, "
            f"{selectors.connects_remaining(ref)} to go, waiting on {len(selectors.pending_connectors(room, ref))}"
        )
    else:
        preview = selectors.quorum_preview(room)
        console.print(
            f"Next signull needs {preview.required} of {preview.active_guessers} guessers ({preview.percentage}%)"
        )


@app.command()
def players(room_id: str):
    room = _load(room_id)
    table = Table(title=f"Players in {room.room_id}")
    table.add_column("#", justify="right")
    table.add_column("Id", style="cyan")
    table.add_column("Name")
    table.add_column("Role")
    table.add_column("Online")
    table.add_column("Score", justify="right", style="bold green")

    for p in selectors.list_players(room):
        role = p.role + (" (host)" if p.id == room.host_id else "")
        online = "yes" if p.is_online else "[yellow]no[/yellow]"
        table.add_row(str(p.join_order), p.id, p.name, role, online, str(p.score))
    console.print(table)


@app.command()
def signulls(room_id: str, which: str = typer.Option("all", help="all, active, resolved, intercepted, failed, inactive")):
    room = _load(room_id)
    table = Table(title=f"Signulls in {room.room_id}")
    table.add_column("Id", style="cyan")
    table.add_column("From")
    table.add_column("Clue")
    table.add_column("Word")
    table.add_column("Status")
    table.add_column("Connects", justify="right")

    for ref in selectors.list_signulls(room, which):
        author = room.players[ref.clue_giver_id].name if ref.clue_giver_id in room.players else ref.clue_giver_id
        word = ref.word if ref.is_terminal else "?"
        table.add_row(ref.id, author, ref.clue, word, ref.status, f"{len(ref.correct_connects)}/{ref.required_connects}")
    console.print(table)


@app.command()
def history(room_id: str, limit: int = typer.Option(20, help="Number of entries to show")):
    room = _load(room_id)
    for entry in room.game_history[-limit:]:
        style = LEVEL_STYLES.get(entry.level, "white")
        console.print(f"[dim]{entry.timestamp:%H:%M:%S}[/dim] [{style}]{entry.message}[/{style}]")


@app.command()
def scores(room_id: str):
    """
    Scoreboard with a per-reason breakdown, plus highlights once the round ended.
    """
    room = _load(room_id)
    breakdown = score_breakdown(room)
    table = Table(title=f"Scores in {room.room_id}")
    table.add_column("Rank", justify="right")
    table.add_column("Player", style="cyan")
    table.add_column("Score", justify="right", style="bold green")
    table.add_column("Breakdown")

    for i, p in enumerate(selectors.scoreboard(room)):
        parts = ", ".join(f"{reason} {points}" for reason, points in breakdown.get(p.id, {}).items())
        table.add_row(str(i + 1), p.name, str(p.score), parts)
    console.print(table)

    if room.phase == "ended":
        for insight in compute_insights(room):
            console.print(f"[bold magenta]{insight.title}[/bold magenta] {insight.subtitle}")


# ---- Bots ----

@app.command()
def autoplay(
    room_id: str = typer.Argument(..., help="Room code for the bot game"),
    models_file: str = typer.Option("models.json", help="Path to bot configuration; the first entry is the setter"),
    max_signulls: int = typer.Option(30, help="Give up after this many signull turns"),
    mode: str = typer.Option("round_robin", help="round_robin or signull"),
    threshold: int = typer.Option(51, help="Percentage of guessers that must connect"),
):
    """
    Plays a full round between bot players.
    """
    asyncio.run(_async_autoplay(room_id, models_file, max_signulls, mode, threshold))


async def _async_autoplay(room_id, models_file, max_signulls, mode, threshold):
    try:
        with open(models_file, "r") as f:
            model_configs = json.load(f)
    except FileNotFoundError:
        console.print(f"[red]Error: {models_file} not found. Create a models.json file.[/red]")
        raise typer.Exit(code=1)

    bots = []
    for m in model_configs:
        extra = {k: v for k, v in m.items() if k not in ("name", "provider", "model_id")}
        try:
            bots.append(create_player(m["name"], m["provider"], m.get("model_id"), **extra))
        except (KeyError, ValueError, TypeError) as e:
            console.print(f"[yellow]Warning: Could not initialize player {m.get('name')}: {e}[/yellow]")

    if len(bots) < 3:
        console.print("[red]Error: Need at least 3 bots (one setter, two guessers).[/red]")
        raise typer.Exit(code=1)

    settings = GameSettings(
        quorum=Quorum(kind="percentage", value=threshold),
        play_mode=mode,
        direct_guesses=get_settings().direct_guesses,
    )
    runner = AutoPlayRunner(_service(), max_signulls=max_signulls)
    try:
        room = await runner.play(room_id, bots[0], bots[1:], settings)
    except SignullError as e:
        _fail(e.code, e.message)

    console.print(f"[green]Game finished in phase {room.phase}.[/green] Winner: {room.winner or 'none'}")
    console.print(f"Secret word: {room.secret_word}")
    console.print(format_history(room.references, room.players))


if __name__ == "__main__":
    app()
