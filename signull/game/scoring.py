"""
Point events.

Incremental, applied the moment they are earned:
- Setter intercepts a signull: +5
- Each correct connect on a resolved signull: +5 to its author
- Clue giver of a resolved signull: +10

End of round, applied once when the game moves to ``ended``:
- Setter: +5 per letter revealed
- Guessers: 5 per letter still hidden, shared per ``end_bonus_policy``
"""
from datetime import datetime
from signull.game.models import BonusPolicy, GameRoom, Reference, ScoreEvent
from signull.game.rotation import guesser_order

INTERCEPT_POINTS = 5
CONNECT_POINTS = 5
CLUE_GIVER_POINTS = 10
POINTS_PER_LETTER = 5


def award(room: GameRoom, player_id: str, delta: int, reason: str, now: datetime, **details) -> ScoreEvent:
    event = ScoreEvent(player_id=player_id, delta=delta, reason=reason, details=details, timestamp=now)
    player = room.players.get(player_id)
    if player:
        player.score += delta
    room.score_events.append(event)
    return event


def score_intercept(room: GameRoom, ref: Reference, now: datetime) -> list[ScoreEvent]:
    return [award(room, ref.intercept.player_id, INTERCEPT_POINTS, "intercept", now, reference_id=ref.id)]


def score_resolution(room: GameRoom, ref: Reference, now: datetime) -> list[ScoreEvent]:
    events = [
        award(room, ref.clue_giver_id, CLUE_GIVER_POINTS, "signull_resolved", now,
              reference_id=ref.id, word=ref.word)
    ]
    # Every correct contributor is paid, not just the connect that tipped the quorum
    for connect in ref.correct_connects:
        events.append(award(room, connect.player_id, CONNECT_POINTS, "connect", now, reference_id=ref.id))
    return events


def split_bonus(total: int, guesser_ids: list[str], policy: BonusPolicy) -> dict[str, int]:
    if not guesser_ids or total <= 0:
        return {}
    if policy == "each":
        return {gid: total for gid in guesser_ids}

    share, remainder = divmod(total, len(guesser_ids))
    return {gid: share + (1 if i < remainder else 0) for i, gid in enumerate(guesser_ids)}


def score_round_end(room: GameRoom, now: datetime) -> list[ScoreEvent]:
    word_len = len(room.secret_word)
    revealed = min(room.revealed_count, word_len)
    hidden = word_len - revealed
    events = []

    if room.setter_id and revealed:
        events.append(award(
            room, room.setter_id, POINTS_PER_LETTER * revealed, "round_end_setter", now,
            revealed=revealed,
        ))

    shares = split_bonus(POINTS_PER_LETTER * hidden, guesser_order(room), room.settings.end_bonus_policy)
    for gid, points in shares.items():
        if points:
            events.append(award(room, gid, points, "round_end_guessers", now,
                                hidden=hidden, policy=room.settings.end_bonus_policy))
    return events


def score_breakdown(room: GameRoom) -> dict[str, dict[str, int]]:
    """player_id -> reason -> total points"""
    breakdown = {}
    for event in room.score_events:
        reasons = breakdown.setdefault(event.player_id, {})
        reasons[event.reason] = reasons.get(event.reason, 0) + event.delta
    return breakdown
