import asyncio
import logging
from typing import Dict, List, Optional
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from signull.game.models import (
    CommandResult,
    CreateSignull,
    DirectGuess,
    GameRoom,
    GameSettings,
    JoinRoom,
    SetSecretWord,
    StartGame,
    SubmitConnect,
    SubmitIntercept,
)
from signull.game.rules import format_history, revealed_prefix
from signull.players.base import BotPlayer, TableView
from signull.service.rooms import RoomService

logger = logging.getLogger(__name__)

# Submitted in place of an answer the engine refused, so the signull can still settle
PASS_GUESS = "PASS"


class AutoPlayRunner:
    """
    Drives a full round with bot players through the room service, the same
    way human clients would: every move is a command and every answer races
    the others through the service locks.
    """

    def __init__(self, service: RoomService, max_signulls: int = 30, max_attempts: int = 3):
        self.service = service
        self.max_signulls = max_signulls
        self.max_attempts = max_attempts

    async def play(
        self,
        room_id: str,
        setter: BotPlayer,
        guessers: List[BotPlayer],
        settings: Optional[GameSettings] = None,
        show_progress: bool = True,
    ) -> GameRoom:
        bots: Dict[str, BotPlayer] = {setter.name: setter, **{g.name: g for g in guessers}}
        room = await self.service.open_room(room_id, setter.name, setter.name, settings)
        room_id = room.room_id
        for guesser in guessers:
            await self._run(room_id, JoinRoom(actor_id=guesser.name, name=guesser.name))
        await self._run(room_id, StartGame(actor_id=setter.name))

        if not await self._set_word(room_id, setter):
            logger.error(f"Room {room_id}: setter {setter.name} never produced a valid word")
            return await self.service.get_room(room_id)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            disable=not show_progress,
        ) as progress:
            task = progress.add_task(f"[cyan]Room {room_id}", total=self.max_signulls)
            for turn in range(self.max_signulls):
                room = await self.service.get_room(room_id)
                if room.phase != "guessing":
                    break
                progress.update(task, description=f"[cyan]Room {room_id}: {revealed_prefix(room) or '-'}")

                giver_id = room.rotation.clue_giver_id or guessers[turn % len(guessers)].name
                reference_id = await self._create_signull(room_id, bots[giver_id])
                if reference_id:
                    await self._answer(room_id, reference_id, bots)
                await self._direct_guesses(room_id, guessers)
                progress.advance(task)

        room = await self.service.get_room(room_id)
        logger.info(f"Room {room_id} finished in phase {room.phase}, winner={room.winner}")
        return room

    async def _run(self, room_id: str, command) -> CommandResult:
        result = await self.service.execute(room_id, command)
        if not result.ok:
            logger.warning(f"Room {room_id}: {type(command).__name__} by {command.actor_id} failed: "
                           f"{result.error_code} {result.error_message}")
        return result

    async def _set_word(self, room_id: str, setter: BotPlayer) -> bool:
        for _ in range(self.max_attempts):
            word = await setter.choose_secret_word()
            result = await self._run(room_id, SetSecretWord(actor_id=setter.name, word=word))
            if result.ok:
                setter.secret_word = result.room.secret_word
                return True
        return False

    async def _create_signull(self, room_id: str, giver: BotPlayer) -> Optional[str]:
        error_msg = None
        for _ in range(self.max_attempts):
            view = self._view(await self.service.get_room(room_id))
            submission = await giver.give_signull(view, error_msg)
            result = await self._run(
                room_id,
                CreateSignull(actor_id=giver.name, word=submission.word or "", clue=submission.clue or ""),
            )
            if result.ok:
                return result.room.current_reference.id
            error_msg = result.error_message
        return None

    async def _answer(self, room_id: str, reference_id: str, bots: Dict[str, BotPlayer]):
        room = await self.service.get_room(room_id)
        ref = room.current_reference
        view = self._view(room)
        setter = bots[room.setter_id]

        async def intercept():
            guess = await setter.intercept(view)
            if guess:
                await self._run(room_id, SubmitIntercept(actor_id=setter.name, reference_id=reference_id, guess=guess))

        async def connect(player_id: str):
            guess = await bots[player_id].connect(view)
            result = await self._run(room_id, SubmitConnect(actor_id=player_id, reference_id=reference_id, guess=guess))
            if not result.ok and result.error_code == "VALIDATION_ERROR":
                await self._run(room_id, SubmitConnect(actor_id=player_id, reference_id=reference_id, guess=PASS_GUESS))

        await asyncio.gather(intercept(), *(connect(pid) for pid in ref.eligible_ids if pid in bots))

    async def _direct_guesses(self, room_id: str, guessers: List[BotPlayer]):
        for guesser in guessers:
            room = await self.service.get_room(room_id)
            if room.phase != "guessing" or room.direct_guesses_left <= 0:
                return
            guess = await guesser.direct_guess(self._view(room))
            if guess:
                await self._run(room_id, DirectGuess(actor_id=guesser.name, word=guess))

    def _view(self, room: GameRoom) -> TableView:
        ref = room.current_reference
        giver = room.players.get(ref.clue_giver_id) if ref else None
        return TableView(
            prefix=revealed_prefix(room),
            word_length=len(room.secret_word),
            history=format_history(room.references, room.players),
            direct_guesses_left=room.direct_guesses_left,
            clue=ref.clue if ref else None,
            clue_giver=giver.name if giver else None,
        )
