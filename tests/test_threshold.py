from signull.game.models import Quorum
from signull.game.threshold import (
    count_to_percentage,
    describe,
    percentage_to_count,
    required_connects,
)


def test_count_stays_in_bounds():
    for guessers in range(0, 101):
        for percentage in range(0, 101):
            required = percentage_to_count(guessers, percentage)
            assert 1 <= required <= max(guessers, 1)


def test_count_percentage_round_trip():
    for guessers in range(1, 101):
        for percentage in range(0, 101):
            required = percentage_to_count(guessers, percentage)
            assert percentage_to_count(guessers, count_to_percentage(guessers, required)) == required


def test_majority_of_four_needs_three():
    assert percentage_to_count(4, 51) == 3
    assert percentage_to_count(4, 50) == 2
    assert percentage_to_count(4, 100) == 4


def test_zero_percent_still_needs_one():
    assert percentage_to_count(5, 0) == 1


def test_no_guessers():
    assert percentage_to_count(0, 51) == 1
    assert count_to_percentage(0, 1) == 100


def test_display_percentage():
    assert count_to_percentage(4, 2) == 50
    assert count_to_percentage(3, 1) == 33
    assert count_to_percentage(3, 3) == 100


def test_count_quorum_is_clamped():
    assert required_connects(3, Quorum(kind="count", value=5)) == 3
    assert required_connects(3, Quorum(kind="count", value=0)) == 1
    assert required_connects(3, Quorum(kind="count", value=2)) == 2


def test_describe():
    view = describe(4, Quorum(kind="percentage", value=51))
    assert view.active_guessers == 4
    assert view.required == 3
    assert view.percentage == 75
