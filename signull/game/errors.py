"""
Rule violations raised by the engine.

Every error carries a machine-readable ``code`` and a message meant for the
player. None of them is fatal to a room: the snapshot a rejected command was
applied to is left untouched.
"""


class SignullError(Exception):
    code = "SIGNULL_ERROR"
    default_message = "That action could not be completed."

    def __init__(self, message: str | None = None, code: str | None = None, **details):
        self.message = message or self.default_message
        if code:
            self.code = code
        self.details = details
        super().__init__(self.message)


# ---- Shape ----

class ValidationError(SignullError):
    code = "VALIDATION_ERROR"
    default_message = "Input validation failed."


class InvalidWordError(ValidationError):
    code = "INVALID_WORD"
    default_message = "Word must be 3-24 letters."


# ---- Role ----

class PermissionDeniedError(SignullError):
    code = "UNAUTHORIZED_ACTION"
    default_message = "You don't have permission to do that."


class NotYourTurnError(PermissionDeniedError):
    code = "NOT_YOUR_TURN"
    default_message = "Not your turn."


class NoGuessesLeftError(PermissionDeniedError):
    code = "NO_GUESSES_LEFT"
    default_message = "No direct guesses left."


# ---- Phase ----

class PhaseError(SignullError):
    code = "INVALID_GAME_PHASE"
    default_message = "Not allowed in the current phase."


class NotReadyError(PhaseError):
    code = "NOT_READY"
    default_message = "The room is not ready to start."


# ---- References ----

class StaleReferenceError(SignullError):
    code = "STALE_REFERENCE"
    default_message = "That clue already resolved."


class ConflictError(SignullError):
    code = "CONFLICT"
    default_message = "Someone else got there first."


class StaleWriteError(ConflictError):
    code = "STALE_WRITE"
    default_message = "The room changed while your action was being saved. Try again."


class DuplicateAnswerError(ConflictError):
    code = "ALREADY_ANSWERED"
    default_message = "You already answered this signull."


class ReferenceInProgressError(ConflictError):
    code = "REFERENCE_IN_PROGRESS"
    default_message = "A signull is already in progress."


class RoomFullError(ConflictError):
    code = "ROOM_FULL"
    default_message = "This room is full."


# ---- Lookup ----

class NotFoundError(SignullError):
    code = "NOT_FOUND"
    default_message = "Not found."


class RoomNotFound(NotFoundError):
    code = "ROOM_NOT_FOUND"

    def __init__(self, room_id: str):
        self.room_id = room_id
        super().__init__(f"Room {room_id} not found")


class PlayerNotFound(NotFoundError):
    code = "PLAYER_NOT_FOUND"

    def __init__(self, player_id: str):
        self.player_id = player_id
        super().__init__(f"Player {player_id} not found")
