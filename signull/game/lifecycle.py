"""
Life of a single signull, from creation to its one terminal status.

Answers are applied one at a time, first committer wins:

1. The setter's intercept, if it matches the word, blocks the signull.
2. Correct connects are counted; reaching the quorum frozen at creation
   resolves it and reveals a letter.
3. When every eligible guesser still around has answered without reaching the
   quorum, the signull fails.
4. A clue giver leaving, or the round stopping, makes it inactive.

Once terminal a reference moves to ``room.references`` and is never touched again.
"""
import logging
from datetime import datetime
from signull.game import journal, rules, threshold
from signull.game.errors import (
    ConflictError,
    DuplicateAnswerError,
    PermissionDeniedError,
    ReferenceInProgressError,
    StaleReferenceError,
)
from signull.game.models import Connect, GameRoom, InterceptAttempt, Reference, ReferenceStatus
from signull.game.rotation import claim_turn, eligible_guessers

logger = logging.getLogger(__name__)


def create(room: GameRoom, player_id: str, word: str, clue: str, now: datetime) -> Reference:
    if room.current_reference is not None:
        raise ReferenceInProgressError()

    player = room.players[player_id]
    if player.role != "guesser":
        raise PermissionDeniedError("Only guessers can send signulls")

    word = rules.normalize_reference_word(word)
    clue = rules.normalize_clue(clue)
    rules.check_prefix(room, word)

    eligible = [pid for pid in eligible_guessers(room) if pid != player_id]
    if not eligible:
        raise ConflictError("Nobody else is online to connect", code="NO_CONNECTORS")

    claim_turn(room, player_id, now)

    room.reference_seq += 1
    ref = Reference(
        id=f"sn{room.reference_seq}",
        clue_giver_id=player_id,
        word=word,
        clue=clue,
        required_connects=threshold.required_connects(len(eligible), room.settings.quorum),
        eligible_ids=eligible,
        is_final=word == room.secret_word,
        revealed_at_creation=room.revealed_count,
        created_at=now,
    )
    room.current_reference = ref
    journal.record(
        room, "signull_created", f"{player.name} sent a signull: \"{clue}\"", now,
        player_id=player_id, reference_id=ref.id,
    )
    logger.info(f"Room {room.room_id}: {ref.id} created by {player_id}, needs {ref.required_connects}")
    return ref


def pending_reference(room: GameRoom, reference_id: str) -> Reference:
    ref = room.find_reference(reference_id)
    if ref is None:
        raise StaleReferenceError(f"No signull {reference_id}", code="UNKNOWN_REFERENCE")
    if ref.is_terminal:
        raise StaleReferenceError(f"That signull was already {ref.status}")
    return ref


def submit_connect(room: GameRoom, player_id: str, reference_id: str, guess: str, now: datetime) -> Reference:
    ref = pending_reference(room, reference_id)
    player = room.players[player_id]

    if player.role == "setter":
        raise PermissionDeniedError("The setter intercepts instead of connecting", code="USE_INTERCEPT")
    if player_id == ref.clue_giver_id:
        raise PermissionDeniedError("You can't connect to your own signull", code="OWN_SIGNULL")
    if player_id not in ref.eligible_ids:
        raise PermissionDeniedError("You joined after this signull was sent", code="NOT_ELIGIBLE")
    if ref.has_answered(player_id):
        raise DuplicateAnswerError()

    guess = rules.normalize_guess(guess)
    connect = Connect(player_id=player_id, guess=guess, is_correct=guess == ref.word, timestamp=now)
    ref.connects.append(connect)
    journal.record(
        room, "connect", f"{player.name} connected", now,
        level="success" if connect.is_correct else "info",
        player_id=player_id, reference_id=ref.id,
    )

    status = evaluate(room, ref)
    if status:
        finish(room, ref, status, now)
    return ref


def submit_intercept(room: GameRoom, player_id: str, reference_id: str, guess: str, now: datetime) -> Reference:
    ref = pending_reference(room, reference_id)
    player = room.players[player_id]

    if player.role != "setter":
        raise PermissionDeniedError("Only the setter can intercept", code="NOT_SETTER")
    if ref.intercept is not None:
        raise DuplicateAnswerError("You already tried to intercept this signull")

    guess = rules.normalize_guess(guess)
    ref.intercept = InterceptAttempt(player_id=player_id, guess=guess, is_correct=guess == ref.word, timestamp=now)

    if ref.intercept.is_correct:
        finish(room, ref, "intercepted", now)
    else:
        journal.record(
            room, "intercept_missed", f"{player.name} tried to intercept with {guess}", now,
            player_id=player_id, reference_id=ref.id,
        )
    return ref


def outstanding_connectors(room: GameRoom, ref: Reference) -> list[str]:
    """Eligible guessers who are still here, online, and haven't answered."""
    return [
        pid for pid in ref.eligible_ids
        if pid in room.players and room.players[pid].is_online and not ref.has_answered(pid)
    ]


def evaluate(room: GameRoom, ref: Reference) -> ReferenceStatus | None:
    if ref.is_terminal:
        return None
    if len(ref.correct_connects) >= ref.required_connects:
        return "resolved"
    if not outstanding_connectors(room, ref):
        return "failed"
    return None


def finish(room: GameRoom, ref: Reference, status: ReferenceStatus, now: datetime):
    ref.status = status
    ref.resolved_at = now
    room.current_reference = None
    room.references.append(ref)

    giver = journal.player_name(room, ref.clue_giver_id)
    if status == "resolved":
        word_len = len(room.secret_word)
        room.revealed_count = word_len if ref.is_final else min(room.revealed_count + 1, word_len)
        journal.record(
            room, "signull_resolved",
            f"Connected on {ref.word}! {rules.revealed_prefix(room)} is revealed", now,
            level="success", player_id=ref.clue_giver_id, reference_id=ref.id,
        )
    elif status == "intercepted":
        journal.record(
            room, "signull_intercepted",
            f"{journal.player_name(room, room.setter_id)} intercepted {giver}'s signull: {ref.word}", now,
            level="error", player_id=room.setter_id, reference_id=ref.id,
        )
    elif status == "failed":
        journal.record(
            room, "signull_failed", f"Nobody connected on {giver}'s signull ({ref.word})", now,
            level="warning", reference_id=ref.id,
        )
    else:
        journal.record(
            room, "signull_inactive", f"{giver}'s signull was abandoned", now,
            level="warning", reference_id=ref.id,
        )
    logger.info(f"Room {room.room_id}: {ref.id} -> {status}")


def abandon(room: GameRoom, now: datetime) -> Reference | None:
    ref = room.current_reference
    if ref is None:
        return None
    finish(room, ref, "inactive", now)
    return ref
