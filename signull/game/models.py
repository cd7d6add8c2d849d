from datetime import datetime
from typing import Annotated, Any, Literal, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

Phase = Literal["lobby", "setting_word", "guessing", "ended"]
Role = Literal["setter", "guesser"]
Winner = Literal["guessers", "setter"]
ReferenceStatus = Literal["pending", "resolved", "intercepted", "failed", "inactive"]
PlayMode = Literal["round_robin", "signull"]
QuorumKind = Literal["percentage", "count"]
BonusPolicy = Literal["each", "split"]
HistoryLevel = Literal["info", "success", "warning", "error"]

TERMINAL_STATUSES = ("resolved", "intercepted", "failed", "inactive")


class DocumentModel(BaseModel):
    """Base for everything persisted in the room document (camelCase on the wire)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Player(DocumentModel):
    id: str
    name: str
    role: Role = "guesser"
    is_online: bool = True
    score: int = 0
    join_order: int = 0          # Position in the join sequence, drives round-robin order


class Connect(DocumentModel):
    player_id: str
    guess: str                   # Uppercase canonical form
    is_correct: bool
    timestamp: datetime = Field(default_factory=datetime.now)


class InterceptAttempt(DocumentModel):
    player_id: str
    guess: str
    is_correct: bool
    timestamp: datetime = Field(default_factory=datetime.now)


class Reference(DocumentModel):
    id: str
    clue_giver_id: str
    word: str                    # Reference word, uppercase
    clue: str
    status: ReferenceStatus = "pending"
    connects: list[Connect] = Field(default_factory=list)
    intercept: InterceptAttempt | None = None
    required_connects: int = 1   # Quorum frozen at creation
    eligible_ids: list[str] = Field(default_factory=list)  # Guessers allowed to connect
    is_final: bool = False       # Word equals the secret word
    revealed_at_creation: int = 0
    created_at: datetime = Field(default_factory=datetime.now)
    resolved_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def correct_connects(self) -> list[Connect]:
        return [c for c in self.connects if c.is_correct]

    def has_answered(self, player_id: str) -> bool:
        return any(c.player_id == player_id for c in self.connects)


class Quorum(DocumentModel):
    kind: QuorumKind = "percentage"
    value: int = 51


class GameSettings(DocumentModel):
    quorum: Quorum = Field(default_factory=Quorum)
    prefix_mode: bool = True
    max_players: int = 12
    min_players: int = 3
    play_mode: PlayMode = "round_robin"
    direct_guesses: int = 3
    end_bonus_policy: BonusPolicy = "each"
    exhausted_guesses_end_game: bool = False


class RotationState(DocumentModel):
    clue_giver_id: str | None = None
    turns_taken: int = 0


class HistoryEntry(DocumentModel):
    id: str
    type: str
    message: str
    level: HistoryLevel = "info"
    player_id: str | None = None
    reference_id: str | None = None
    timestamp: datetime = Field(default_factory=datetime.now)


class ScoreEvent(DocumentModel):
    player_id: str
    delta: int
    reason: str                  # e.g. "intercept", "connect", "signull_resolved"
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.now)


class GameRoom(DocumentModel):
    room_id: str
    host_id: str
    phase: Phase = Field("lobby", alias="gamePhase")
    setter_id: str | None = Field(None, alias="setterUid")
    players: dict[str, Player] = Field(default_factory=dict)
    settings: GameSettings = Field(default_factory=GameSettings)
    secret_word: str = ""
    revealed_count: int = 0
    direct_guesses_left: int = 0
    winner: Winner | None = None
    current_reference: Reference | None = None
    references: list[Reference] = Field(default_factory=list)  # Terminal references this round
    rotation: RotationState = Field(default_factory=RotationState)
    game_history: list[HistoryEntry] = Field(default_factory=list)
    score_events: list[ScoreEvent] = Field(default_factory=list)
    round_number: int = 0
    reference_seq: int = 0
    history_seq: int = 0
    join_seq: int = 0
    revision: int = 0                # Bumped by every stored write
    applied_commands: list[str] = Field(default_factory=list)  # Recent command ids, oldest first
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    def find_reference(self, reference_id: str) -> Reference | None:
        if self.current_reference and self.current_reference.id == reference_id:
            return self.current_reference
        return next((r for r in self.references if r.id == reference_id), None)

    def to_document(self) -> dict:
        """
        Dumps the room in the shape the external store persists.
        The quorum is written under exactly one of majorityThreshold/connectsRequired.
        """
        data = self.model_dump(mode="json", by_alias=True)
        quorum = data["settings"].pop("quorum")
        key = "majorityThreshold" if quorum["kind"] == "percentage" else "connectsRequired"
        data["settings"][key] = quorum["value"]
        return data

    @classmethod
    def from_document(cls, data: dict) -> "GameRoom":
        data = dict(data)
        settings = dict(data.get("settings") or {})
        if "majorityThreshold" in settings:
            settings["quorum"] = {"kind": "percentage", "value": settings.pop("majorityThreshold")}
        elif "connectsRequired" in settings:
            settings["quorum"] = {"kind": "count", "value": settings.pop("connectsRequired")}
        data["settings"] = settings
        return cls.model_validate(data)


# ---- Commands ---------------------------------------------------------------

class Command(BaseModel):
    actor_id: str
    command_id: str | None = None   # Set by callers to make redelivery idempotent


class JoinRoom(Command):
    kind: Literal["join"] = "join"
    name: str


class LeaveRoom(Command):
    kind: Literal["leave"] = "leave"


class SetPresence(Command):
    kind: Literal["set_presence"] = "set_presence"
    online: bool


class RemovePlayer(Command):
    kind: Literal["remove_player"] = "remove_player"
    target_id: str


class StartGame(Command):
    kind: Literal["start"] = "start"


class SetSecretWord(Command):
    kind: Literal["set_word"] = "set_word"
    word: str


class CreateSignull(Command):
    kind: Literal["signull"] = "signull"
    word: str
    clue: str


class SubmitConnect(Command):
    kind: Literal["connect"] = "connect"
    reference_id: str
    guess: str


class SubmitIntercept(Command):
    kind: Literal["intercept"] = "intercept"
    reference_id: str
    guess: str


class DirectGuess(Command):
    kind: Literal["guess"] = "guess"
    word: str


class VolunteerClueGiver(Command):
    kind: Literal["volunteer"] = "volunteer"


class ChangeSetter(Command):
    kind: Literal["change_setter"] = "change_setter"
    target_id: str


class UpdateSettings(Command):
    kind: Literal["update_settings"] = "update_settings"
    quorum_kind: QuorumKind | None = None
    quorum_value: int | None = None
    prefix_mode: bool | None = None
    max_players: int | None = None
    play_mode: PlayMode | None = None
    direct_guesses: int | None = None
    end_bonus_policy: BonusPolicy | None = None
    exhausted_guesses_end_game: bool | None = None


class ReturnToLobby(Command):
    kind: Literal["return_to_lobby"] = "return_to_lobby"


AnyCommand = Annotated[
    Union[
        JoinRoom, LeaveRoom, SetPresence, RemovePlayer, StartGame, SetSecretWord,
        CreateSignull, SubmitConnect, SubmitIntercept, DirectGuess,
        VolunteerClueGiver, ChangeSetter, UpdateSettings, ReturnToLobby,
    ],
    Field(discriminator="kind"),
]

_command_adapter = TypeAdapter(AnyCommand)


def parse_command(data: dict) -> Command:
    return _command_adapter.validate_python(data)


class Outcome(BaseModel):
    room: GameRoom
    history: list[HistoryEntry] = Field(default_factory=list)
    score_events: list[ScoreEvent] = Field(default_factory=list)


class CommandResult(BaseModel):
    ok: bool
    room: GameRoom | None = None
    history: list[HistoryEntry] = Field(default_factory=list)
    score_events: list[ScoreEvent] = Field(default_factory=list)
    command_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
