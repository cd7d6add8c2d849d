from pydantic import BaseModel
from signull.game.models import Quorum


class QuorumView(BaseModel):
    active_guessers: int
    required: int                # Correct connects needed
    percentage: int              # Display form, derived from required


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def clamp_count(active_guessers: int, count: int) -> int:
    if active_guessers <= 0:
        return 1
    return min(max(count, 1), active_guessers)


def percentage_to_count(active_guessers: int, percentage: int) -> int:
    """
    R = ceil(G * P / 100), clamped to [1, G]. With no guessers R is 1.
    """
    if active_guessers <= 0:
        return 1
    percentage = min(max(percentage, 0), 100)
    return clamp_count(active_guessers, _ceil_div(active_guessers * percentage, 100))


def count_to_percentage(active_guessers: int, count: int) -> int:
    """
    Percentage shown for a count requirement.

    floor(R * 100 / G) is the largest percentage that still maps back to R,
    so percentage_to_count(G, count_to_percentage(G, R)) == R for G <= 100.
    It equals ceil(R / G * 100) whenever that is a whole number.
    """
    if active_guessers <= 0:
        return 100
    count = clamp_count(active_guessers, count)
    return count * 100 // active_guessers


def required_connects(active_guessers: int, quorum: Quorum) -> int:
    if quorum.kind == "percentage":
        return percentage_to_count(active_guessers, quorum.value)
    return clamp_count(active_guessers, quorum.value)


def describe(active_guessers: int, quorum: Quorum) -> QuorumView:
    required = required_connects(active_guessers, quorum)
    return QuorumView(
        active_guessers=active_guessers,
        required=required,
        percentage=count_to_percentage(active_guessers, required),
    )
