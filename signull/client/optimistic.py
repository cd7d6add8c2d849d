import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple
from signull.config import get_settings
from signull.game.engine import GameStateMachine
from signull.game.errors import SignullError
from signull.game.models import Command, GameRoom

logger = logging.getLogger(__name__)


@dataclass
class PendingCommand:
    command: Command
    submitted_at: float


class OptimisticClient:
    """
    Client-side prediction over the authoritative room snapshot.

    Local commands are applied to the last confirmed snapshot right away and
    kept in a pending table. Each authoritative snapshot replaces the
    confirmed state; pending commands the server has not acknowledged are
    re-applied on top, and those older than the timeout are rolled back.
    """

    def __init__(
        self,
        confirmed: GameRoom,
        engine: Optional[GameStateMachine] = None,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.engine = engine or GameStateMachine()
        self.timeout = timeout if timeout is not None else get_settings().pending_timeout_seconds
        self.clock = clock
        self.confirmed = confirmed
        self.pending: List[PendingCommand] = []
        self.view = confirmed

    def predict(self, command: Command) -> Tuple[GameRoom, Command]:
        """
        Applies command locally. Rule violations raise straight away and
        nothing is queued; otherwise the command gets an id if it had none.

        Returns the predicted view and the stamped command, which is what
        should be sent to the server so acknowledgements match.
        """
        if not command.command_id:
            command = command.model_copy(update={"command_id": uuid.uuid4().hex})
        self.view = self.engine.apply(self.view, command).room
        self.pending.append(PendingCommand(command=command, submitted_at=self.clock()))
        return self.view, command

    def pending_ids(self) -> List[str]:
        return [p.command.command_id for p in self.pending]

    def reconcile(self, snapshot: GameRoom, acknowledged: Iterable[str] = ()) -> GameRoom:
        acknowledged = set(acknowledged)
        self.confirmed = snapshot
        self.pending = [p for p in self.pending if p.command.command_id not in acknowledged]
        return self._rebase()

    def reject(self, command_id: str) -> GameRoom:
        """The server refused command_id: drop its prediction."""
        self.pending = [p for p in self.pending if p.command.command_id != command_id]
        return self._rebase()

    def expire(self) -> List[PendingCommand]:
        now = self.clock()
        stale = [p for p in self.pending if now - p.submitted_at > self.timeout]
        if stale:
            for p in stale:
                logger.warning(f"Rolling back unconfirmed {type(p.command).__name__} ({p.command.command_id})")
            self.pending = [p for p in self.pending if now - p.submitted_at <= self.timeout]
            self._rebase()
        return stale

    def _rebase(self) -> GameRoom:
        view = self.confirmed
        survivors = []
        for p in self.pending:
            try:
                view = self.engine.apply(view, p.command).room
            except SignullError as e:
                # The authoritative state moved on and this prediction no longer holds
                logger.info(f"Dropping prediction {p.command.command_id}: {e.code}")
                continue
            survivors.append(p)
        self.pending = survivors
        self.view = view
        return view
