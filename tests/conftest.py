import pytest
from signull.game.engine import GameStateMachine
from signull.game.models import GameSettings, JoinRoom, SetSecretWord, StartGame


@pytest.fixture
def engine():
    return GameStateMachine()


@pytest.fixture
def new_game(engine):
    """
    Builds a room with setter "setter" (also host) and guessers g1..gN,
    started and, if word is given, already in the guessing phase.
    """

    def _new_game(word="ELEPHANT", guessers=3, **settings):
        room = engine.open_room("ROOM1", "setter", "Sam", GameSettings(**settings))
        for i in range(1, guessers + 1):
            room = engine.apply(room, JoinRoom(actor_id=f"g{i}", name=f"Guesser {i}")).room
        room = engine.apply(room, StartGame(actor_id="setter")).room
        if word:
            room = engine.apply(room, SetSecretWord(actor_id="setter", word=word)).room
        return room

    return _new_game
