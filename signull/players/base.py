from abc import ABC, abstractmethod
from pydantic import BaseModel


class TableView(BaseModel):
    """What a bot is allowed to know when it is asked to act."""
    prefix: str                  # Revealed letters of the secret word
    word_length: int
    history: str                 # Finished signulls, one per line
    direct_guesses_left: int
    clue: str | None = None      # Clue of the signull being answered
    clue_giver: str | None = None


class SignullSubmission(BaseModel):
    word: str | None = None
    clue: str | None = None


class BotPlayer(ABC):
    """
    Abstract base class for an automated participant.
    Implementations play either role; the runner only calls what the role needs.
    """

    def __init__(self, name: str):
        self.name = name
        self.secret_word = None  # Known only while playing setter

    @abstractmethod
    async def choose_secret_word(self) -> str:
        """Setter role: pick the secret word."""
        pass

    @abstractmethod
    async def give_signull(self, view: TableView, error_msg: str | None = None) -> SignullSubmission:
        """Guesser role: a reference word (starting with the prefix) and a clue for it."""
        pass

    @abstractmethod
    async def connect(self, view: TableView) -> str:
        """Guesser role: guess the word behind view.clue."""
        pass

    @abstractmethod
    async def intercept(self, view: TableView) -> str:
        """Setter role: guess the word behind view.clue to block it."""
        pass

    async def direct_guess(self, view: TableView) -> str | None:
        """Guesser role: the full secret word, or None to hold off."""
        return None
