import re
from signull.game.errors import InvalidWordError, ValidationError
from signull.game.models import GameRoom, Reference

LETTERS = re.compile(r"^[A-Z]+$")

SECRET_WORD_LENGTH = (3, 24)
REFERENCE_WORD_LENGTH = (2, 24)
GUESS_LENGTH = (1, 24)
DIRECT_GUESS_LENGTH = (3, 24)
CLUE_LENGTH = (2, 120)
NAME_LENGTH = (1, 20)


def _letters(value: str, bounds: tuple[int, int], label: str, error=ValidationError) -> str:
    word = (value or "").strip().upper()
    low, high = bounds
    if not word:
        raise error(f"{label} cannot be empty")
    if not LETTERS.match(word):
        raise error(f"{label} must contain only letters")
    if not low <= len(word) <= high:
        raise error(f"{label} must be {low}-{high} letters long")
    return word


def normalize_secret_word(word: str) -> str:
    return _letters(word, SECRET_WORD_LENGTH, "Secret word", InvalidWordError)


def normalize_reference_word(word: str) -> str:
    return _letters(word, REFERENCE_WORD_LENGTH, "Signull word", InvalidWordError)


def normalize_guess(guess: str) -> str:
    return _letters(guess, GUESS_LENGTH, "Guess")


def normalize_direct_guess(guess: str) -> str:
    return _letters(guess, DIRECT_GUESS_LENGTH, "Direct guess")


def normalize_clue(clue: str) -> str:
    text = (clue or "").strip()
    low, high = CLUE_LENGTH
    if not low <= len(text) <= high:
        raise ValidationError(f"Clue must be {low}-{high} characters")
    return text


def normalize_name(name: str) -> str:
    text = (name or "").strip()
    low, high = NAME_LENGTH
    if not low <= len(text) <= high:
        raise ValidationError(f"Name must be {low}-{high} characters")
    return text


def revealed_prefix(room: GameRoom) -> str:
    return room.secret_word[:room.revealed_count]


def check_prefix(room: GameRoom, word: str):
    """
    In prefix mode a signull word has to share the revealed prefix of the secret word.
    """
    prefix = revealed_prefix(room)
    if room.settings.prefix_mode and word[:len(prefix)].upper() != prefix.upper():
        raise ValidationError(f"Word must start with {prefix}", code="INVALID_PREFIX", prefix=prefix)


def format_history(references: list[Reference], players: dict) -> str:
    """
    One line per finished signull, used for bot prompts and the CLI.
    """
    if not references:
        return "No previous signulls."

    lines = []
    for ref in references:
        giver = players.get(ref.clue_giver_id)
        name = giver.name if giver else ref.clue_giver_id
        line = f"{ref.id} | {name}: \"{ref.clue}\" | "
        if ref.status == "resolved":
            line += f"Connected on \"{ref.word}\" -> Letter revealed"
        elif ref.status == "intercepted":
            line += f"Intercepted by setter (\"{ref.word}\")"
        elif ref.status == "failed":
            line += f"No connection (\"{ref.word}\")"
        else:
            line += "Abandoned"
        lines.append(line)
    return "\n".join(lines)
