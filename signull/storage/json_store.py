import fcntl
import json
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, List, Optional, Protocol
from signull.game.errors import ConflictError, RoomNotFound, StaleWriteError
from signull.game.models import GameRoom

logger = logging.getLogger(__name__)


class RoomStore(Protocol):
    def create_room(self, room: GameRoom) -> None: ...
    def save_room(self, room: GameRoom, expected_revision: Optional[int] = None) -> None: ...
    def load_room(self, room_id: str) -> GameRoom: ...
    def delete_room(self, room_id: str) -> bool: ...
    def list_room_ids(self) -> List[str]: ...


def _check_revision(room_id: str, current: Optional[int], expected: Optional[int]):
    if expected is not None and current != expected:
        raise StaleWriteError(
            f"Room {room_id} is at revision {current}, expected {expected}",
        )


class MemoryRoomStore:
    """
    Keeps room documents in a dict. Documents are stored serialized so a
    loaded room never aliases a room the caller still holds.
    """

    def __init__(self):
        self._documents: Dict[str, dict] = {}
        self._lock = threading.Lock()

    def create_room(self, room: GameRoom):
        with self._lock:
            if room.room_id in self._documents:
                raise ConflictError(f"Room {room.room_id} already exists", code="ROOM_EXISTS")
            self._documents[room.room_id] = room.to_document()

    def save_room(self, room: GameRoom, expected_revision: Optional[int] = None):
        with self._lock:
            current = self._documents.get(room.room_id)
            _check_revision(room.room_id, current["revision"] if current else None, expected_revision)
            self._documents[room.room_id] = room.to_document()

    def load_room(self, room_id: str) -> GameRoom:
        if room_id not in self._documents:
            raise RoomNotFound(room_id)
        return GameRoom.from_document(self._documents[room_id])

    def delete_room(self, room_id: str) -> bool:
        with self._lock:
            return self._documents.pop(room_id, None) is not None

    def list_room_ids(self) -> List[str]:
        return sorted(self._documents)


class JsonRoomStore:
    """
    Persists one JSON document per room under base_path.

    Writes from any number of processes go through an flock on a per-room
    lock file, and a save only lands if the stored revision is the one the
    writer loaded.
    """

    def __init__(self, base_path: str = "rooms"):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _path(self, room_id: str) -> Path:
        return self.base_path / f"room_{room_id.upper()}.json"

    @contextmanager
    def _locked(self, room_id: str):
        lock_path = self.base_path / f".room_{room_id.upper()}.lock"
        with open(lock_path, 'a+') as fh:
            fcntl.flock(fh.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(fh.fileno(), fcntl.LOCK_UN)

    def _write(self, room: GameRoom):
        path = self._path(room.room_id)
        tmp = path.with_suffix(".tmp")
        with open(tmp, 'w') as f:
            json.dump(room.to_document(), f, indent=2)
        tmp.replace(path)

    def _stored_revision(self, room_id: str) -> Optional[int]:
        path = self._path(room_id)
        if not path.exists():
            return None
        with open(path, 'r') as f:
            return json.load(f).get("revision", 0)

    def create_room(self, room: GameRoom):
        with self._locked(room.room_id):
            if self._path(room.room_id).exists():
                raise ConflictError(f"Room {room.room_id} already exists", code="ROOM_EXISTS")
            self._write(room)

    def save_room(self, room: GameRoom, expected_revision: Optional[int] = None):
        with self._locked(room.room_id):
            _check_revision(room.room_id, self._stored_revision(room.room_id), expected_revision)
            self._write(room)

    def load_room(self, room_id: str) -> GameRoom:
        path = self._path(room_id)
        if not path.exists():
            raise RoomNotFound(room_id)
        with open(path, 'r') as f:
            data = json.load(f)
        return GameRoom.from_document(data)

    def delete_room(self, room_id: str) -> bool:
        with self._locked(room_id):
            path = self._path(room_id)
            if not path.exists():
                return False
            path.unlink()
        logger.info(f"Deleted room document {path}")
        return True

    def list_room_ids(self) -> List[str]:
        return sorted(p.stem.removeprefix("room_") for p in self.base_path.glob("room_*.json"))
