import pytest
from signull.autoplay.runner import AutoPlayRunner
from signull.players.adapters import ChatCompletionsPlayer, LLMPlayer, ScriptedPlayer, extract_json
from signull.players.base import TableView
from signull.players.factory import create_player
from signull.service.rooms import RoomService


class FakeLLM(LLMPlayer):
    def __init__(self, name, reply):
        super().__init__(name)
        self.reply = reply
        self.prompts = []

    async def _call_api(self, system_prompt, user_prompt):
        self.prompts.append((system_prompt, user_prompt))
        return self.reply


class RecordingPlayer(ScriptedPlayer):
    def __init__(self, name, script):
        super().__init__(name, script)
        self.errors = []

    async def give_signull(self, view, error_msg=None):
        self.errors.append(error_msg)
        return await super().give_signull(view, error_msg)


VIEW = TableView(
    prefix="EL",
    word_length=8,
    history="No previous signulls.",
    direct_guesses_left=3,
    clue="arm joint",
    clue_giver="Ann",
)


def test_extract_json():
    assert extract_json('{"word": "ELBOW"}') == {"word": "ELBOW"}
    assert extract_json('Sure!\n```json\n{"guess": "ELBOW"}\n```') == {"guess": "ELBOW"}
    assert extract_json('My answer is {"guess": "KNEE"} final.') == {"guess": "KNEE"}
    assert extract_json("no json here") == {}
    assert extract_json("[1, 2]") == {}


async def test_llm_player_prompts():
    bot = FakeLLM("Ann", '```json\n{"word": "ELBOW", "clue": "arm joint"}\n```')
    submission = await bot.give_signull(VIEW, error_msg="Word must start with EL")

    assert submission.word == "ELBOW"
    assert submission.clue == "arm joint"
    _, user_prompt = bot.prompts[-1]
    assert 'Prefix: "EL"' in user_prompt
    assert "Word must start with EL" in user_prompt


async def test_llm_setter_intercept():
    bot = FakeLLM("Sam", '{"guess": "ELBOW"}')
    assert await bot.intercept(VIEW) == ""

    bot.secret_word = "ELEPHANT"
    assert await bot.intercept(VIEW) == "ELBOW"
    system_prompt, _ = bot.prompts[-1]
    assert "ELEPHANT" in system_prompt


async def test_llm_bad_reply_degrades_to_empty():
    bot = FakeLLM("Ann", "I don't know")
    assert await bot.connect(VIEW) == ""
    assert await bot.direct_guess(VIEW) is None


def test_factory():
    bot = create_player("Ann", "ollama", "llama3")
    assert isinstance(bot, ChatCompletionsPlayer)
    assert bot.url == "http://localhost:11434/v1/chat/completions"
    assert isinstance(create_player("Bob", "scripted", script={"secret": "PLANET"}), ScriptedPlayer)
    with pytest.raises(ValueError):
        create_player("Cat", "carrier-pigeon")


async def test_autoplay_full_round():
    setter = ScriptedPlayer("Sam", {"secret": "planet", "intercepts": {"purple fruit": "PLUM"}})
    ann = ScriptedPlayer("Ann", {
        "signulls": [["PLANT", "grows in pots"]],
        "connects": {"a world": "PLANET"},
        "direct": ["PLANE"],
    })
    bob = ScriptedPlayer("Bob", {
        "signulls": [["PLUM", "purple fruit"]],
        "connects": {"grows in pots": "PLANT", "a world": "PLANET"},
    })
    cat = RecordingPlayer("Cat", {
        "signulls": [["BANANA", "yellow"], ["PLANET", "a world"]],
        "connects": {"grows in pots": "PLANT"},
    })

    runner = AutoPlayRunner(RoomService(), max_signulls=10)
    room = await runner.play("bots", setter, [ann, bob, cat], show_progress=False)

    assert room.phase == "ended"
    assert room.winner == "guessers"
    assert setter.secret_word == "PLANET"
    assert [r.status for r in room.references] == ["resolved", "intercepted", "resolved"]
    assert room.direct_guesses_left == 2
    assert cat.errors == [None, "Word must start with P"]
    assert {pid: p.score for pid, p in room.players.items()} == {
        "Sam": 35, "Ann": 15, "Bob": 10, "Cat": 15,
    }


def test_llm_player_needs_an_api_call():
    with pytest.raises(TypeError):
        LLMPlayer("Ann")
