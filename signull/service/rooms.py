import asyncio
import logging
from collections import OrderedDict
from typing import Dict, List, Optional
from signull.game.engine import GameStateMachine
from signull.game.errors import RoomNotFound, SignullError, StaleReferenceError, StaleWriteError
from signull.game.models import Command, CommandResult, GameRoom, GameSettings
from signull.storage.json_store import MemoryRoomStore, RoomStore

logger = logging.getLogger(__name__)


class Subscription:
    """
    Stream of snapshots for one room. Registered as soon as it is created,
    so nothing committed afterwards is missed. A subscriber that falls more
    than maxsize snapshots behind loses the oldest ones.
    """

    def __init__(self, service: "RoomService", room_id: str, maxsize: int = 64):
        self.service = service
        self.room_id = room_id
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self) -> GameRoom:
        if self.closed and self.queue.empty():
            raise StopAsyncIteration
        room = await self.queue.get()
        if room is None:
            self.close()
            raise StopAsyncIteration
        return room

    def push(self, room: Optional[GameRoom]):
        if self.queue.full():
            self.queue.get_nowait()
        self.queue.put_nowait(room)

    def close(self):
        if not self.closed:
            self.closed = True
            self.service._unsubscribe(self)


class RoomService:
    """
    Runs the apply loop for every room.

    Commands for one room are applied one at a time under that room's lock;
    answers to a signull also take a lock keyed by the signull id. Other
    processes sharing the store are fenced off by the room's revision: a
    write that lost the race is re-applied to the fresh room.
    """

    def __init__(
        self,
        store: Optional[RoomStore] = None,
        engine: Optional[GameStateMachine] = None,
        command_memory: int = 256,
        max_attempts: int = 5,
    ):
        self.store = store or MemoryRoomStore()
        self.engine = engine or GameStateMachine()
        self.command_memory = command_memory
        self.max_attempts = max_attempts
        self._room_locks: Dict[str, asyncio.Lock] = {}
        self._reference_locks: Dict[tuple, asyncio.Lock] = {}
        self._applied: Dict[str, OrderedDict] = {}
        self._subscribers: Dict[str, List[Subscription]] = {}

    def _room_lock(self, room_id: str) -> asyncio.Lock:
        return self._room_locks.setdefault(room_id, asyncio.Lock())

    def _reference_lock(self, room_id: str, reference_id: str) -> asyncio.Lock:
        return self._reference_locks.setdefault((room_id, reference_id), asyncio.Lock())

    async def open_room(
        self,
        room_id: str,
        host_id: str,
        host_name: str,
        settings: Optional[GameSettings] = None,
    ) -> GameRoom:
        room_id = room_id.upper()
        async with self._room_lock(room_id):
            room = self.engine.open_room(room_id, host_id, host_name, settings)
            await asyncio.to_thread(self.store.create_room, room)
            self._broadcast(room)
        logger.info(f"Opened room {room_id} for host {host_id}")
        return room

    async def get_room(self, room_id: str) -> GameRoom:
        return await asyncio.to_thread(self.store.load_room, room_id.upper())

    async def execute(self, room_id: str, command: Command) -> CommandResult:
        room_id = room_id.upper()
        reference_id = getattr(command, "reference_id", None)
        if reference_id is None:
            return await self._execute(room_id, command)

        async with self._reference_lock(room_id, reference_id):
            result = await self._execute(room_id, command)

        room = result.room
        ref = room.find_reference(reference_id) if room else None
        if ref is None or ref.is_terminal:
            self._reference_locks.pop((room_id, reference_id), None)
        return result

    async def _execute(self, room_id: str, command: Command) -> CommandResult:
        async with self._room_lock(room_id):
            applied = self._applied.setdefault(room_id, OrderedDict())
            if command.command_id and command.command_id in applied:
                logger.info(f"Room {room_id}: command {command.command_id} already applied")
                return applied[command.command_id]

            room = None
            for attempt in range(1, self.max_attempts + 1):
                try:
                    room = await asyncio.to_thread(self.store.load_room, room_id)
                    if command.command_id and command.command_id in room.applied_commands:
                        logger.info(f"Room {room_id}: command {command.command_id} was applied elsewhere")
                        return CommandResult(ok=True, room=room, command_id=command.command_id)
                    outcome = self.engine.apply(room, command)
                    await self._store(room, outcome.room, command)
                except StaleWriteError as e:
                    logger.info(f"Room {room_id}: {e.message}, retrying (attempt {attempt})")
                    continue
                except StaleReferenceError as e:
                    logger.info(f"Room {room_id}: stale answer from {command.actor_id} ignored ({e.message})")
                    return self._failure(room, command, e)
                except SignullError as e:
                    logger.info(f"Room {room_id}: {type(command).__name__} from {command.actor_id} rejected: {e.code}")
                    return self._failure(room, command, e)
                break
            else:
                logger.warning(f"Room {room_id}: gave up on {command.command_id} after {self.max_attempts} attempts")
                return self._failure(room, command, StaleWriteError())

            result = CommandResult(
                ok=True,
                room=outcome.room,
                history=outcome.history,
                score_events=outcome.score_events,
                command_id=command.command_id,
            )
            if command.command_id:
                applied[command.command_id] = result
                while len(applied) > self.command_memory:
                    applied.popitem(last=False)
            return result

    async def _store(self, loaded: GameRoom, room: GameRoom, command: Command):
        """Writes room over loaded, or tears the room down once nobody is left in it."""
        if not room.players:
            await self._teardown(room.room_id)
            return
        room.revision = loaded.revision + 1
        if command.command_id:
            room.applied_commands = (room.applied_commands + [command.command_id])[-self.command_memory:]
        await asyncio.to_thread(self.store.save_room, room, loaded.revision)
        self._broadcast(room)

    def _failure(self, room: Optional[GameRoom], command: Command, error: SignullError) -> CommandResult:
        return CommandResult(
            ok=False,
            room=room,
            command_id=command.command_id,
            error_code=error.code,
            error_message=error.message,
        )

    def _broadcast(self, room: GameRoom):
        for subscription in list(self._subscribers.get(room.room_id, [])):
            subscription.push(room)

    async def _teardown(self, room_id: str):
        await asyncio.to_thread(self.store.delete_room, room_id)
        self._applied.pop(room_id, None)
        self._room_locks.pop(room_id, None)
        for key in [k for k in self._reference_locks if k[0] == room_id]:
            del self._reference_locks[key]
        for subscription in self._subscribers.pop(room_id, []):
            subscription.push(None)
        logger.info(f"Room {room_id} was torn down")

    async def close_room(self, room_id: str):
        room_id = room_id.upper()
        async with self._room_lock(room_id):
            if room_id not in await asyncio.to_thread(self.store.list_room_ids):
                raise RoomNotFound(room_id)
            await self._teardown(room_id)

    def subscribe(self, room_id: str, maxsize: int = 64) -> Subscription:
        subscription = Subscription(self, room_id.upper(), maxsize)
        self._subscribers.setdefault(subscription.room_id, []).append(subscription)
        return subscription

    def _unsubscribe(self, subscription: Subscription):
        subscribers = self._subscribers.get(subscription.room_id, [])
        if subscription in subscribers:
            subscribers.remove(subscription)
