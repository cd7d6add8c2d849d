from datetime import datetime
from signull.game.models import GameRoom, HistoryEntry, HistoryLevel


def record(
    room: GameRoom,
    type: str,
    message: str,
    now: datetime,
    level: HistoryLevel = "info",
    player_id: str | None = None,
    reference_id: str | None = None,
) -> HistoryEntry:
    """Appends an entry to the room's history; ids follow insertion order."""
    room.history_seq += 1
    entry = HistoryEntry(
        id=f"h{room.history_seq}",
        type=type,
        message=message,
        level=level,
        player_id=player_id,
        reference_id=reference_id,
        timestamp=now,
    )
    room.game_history.append(entry)
    return entry


def player_name(room: GameRoom, player_id: str | None) -> str:
    player = room.players.get(player_id) if player_id else None
    return player.name if player else "Someone"
