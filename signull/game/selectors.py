from typing import Literal
from signull.game import threshold
from signull.game.lifecycle import outstanding_connectors
from signull.game.models import GameRoom, Player, Reference
from signull.game.rotation import eligible_guessers
from signull.game.rules import revealed_prefix

SignullFilter = Literal["all", "active", "resolved", "intercepted", "failed", "inactive"]


def masked_word(room: GameRoom) -> str:
    """The secret word with unrevealed letters as underscores, e.g. EL______."""
    if not room.secret_word:
        return ""
    prefix = revealed_prefix(room)
    return prefix + "_" * (len(room.secret_word) - len(prefix))


def quorum_preview(room: GameRoom, clue_giver_id: str | None = None) -> threshold.QuorumView:
    """What the next signull would need with the roster as it is now."""
    giver = clue_giver_id or room.rotation.clue_giver_id
    active = [pid for pid in eligible_guessers(room) if pid != giver]
    return threshold.describe(len(active), room.settings.quorum)


def connects_remaining(ref: Reference | None) -> int:
    if ref is None or ref.is_terminal:
        return 0
    return max(0, ref.required_connects - len(ref.correct_connects))


def pending_connectors(room: GameRoom, ref: Reference | None = None) -> list[str]:
    ref = ref or room.current_reference
    if ref is None or ref.is_terminal:
        return []
    return outstanding_connectors(room, ref)


def list_players(room: GameRoom) -> list[Player]:
    return sorted(room.players.values(), key=lambda p: p.join_order)


def scoreboard(room: GameRoom) -> list[Player]:
    return sorted(room.players.values(), key=lambda p: (-p.score, p.join_order))


def list_signulls(room: GameRoom, which: SignullFilter = "all") -> list[Reference]:
    refs = list(room.references)
    if room.current_reference:
        refs.append(room.current_reference)
    if which == "all":
        return refs
    if which == "active":
        return [r for r in refs if r.status == "pending"]
    return [r for r in refs if r.status == which]


def can_see_secret(room: GameRoom, viewer_id: str | None) -> bool:
    return room.phase == "ended" or (viewer_id is not None and viewer_id == room.setter_id)


def public_document(room: GameRoom, viewer_id: str | None = None) -> dict:
    """
    The room document as a given participant may see it: the secret word and
    the words of pending signulls stay hidden until they are public.
    """
    doc = room.to_document()
    if not can_see_secret(room, viewer_id):
        doc["secretWord"] = masked_word(room)

    current = doc.get("currentReference")
    if current and viewer_id != current["clueGiverId"]:
        current["word"] = None
        for connect in current["connects"]:
            if connect["playerId"] != viewer_id:
                connect["guess"] = None
    return doc
