import json
import pytest
from typer.testing import CliRunner
from signull.cli import app
from signull.config import get_settings

runner = CliRunner()


@pytest.fixture(autouse=True)
def data_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("SIGNULL_DATA_DIR", str(tmp_path / "rooms"))
    monkeypatch.delenv("SIGNULL_PLAYER", raising=False)
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


def invoke(*args):
    return runner.invoke(app, list(args))


def setup_game():
    assert invoke("create", "abcd", "--name", "Sam", "--as", "sam").exit_code == 0
    for pid, name in (("ann", "Ann"), ("bob", "Bob"), ("cat", "Cat")):
        assert invoke("join", "ABCD", "--name", name, "--as", pid).exit_code == 0
    assert invoke("start", "ABCD", "--as", "sam").exit_code == 0
    assert invoke("setword", "ABCD", "elephant", "--as", "sam").exit_code == 0


def test_create_and_list(data_dir):
    result = invoke("create", "abcd", "--name", "Sam", "--as", "sam")
    assert result.exit_code == 0
    assert "Room ABCD is open" in result.output
    assert (data_dir / "rooms" / "room_ABCD.json").exists()

    result = invoke("rooms")
    assert "ABCD" in result.output


def test_full_game():
    setup_game()

    result = invoke("status", "ABCD", "--as", "ann")
    assert result.exit_code == 0
    assert "________" in result.output
    assert "ELEPHANT" not in result.output

    assert invoke("signull", "ABCD", "elbow", "arm joint", "--as", "ann").exit_code == 0
    assert invoke("connect", "ABCD", "elbow", "--as", "bob").exit_code == 0
    result = invoke("connect", "ABCD", "elbow", "--as", "cat")
    assert result.exit_code == 0
    assert "E is revealed" in result.output

    result = invoke("status", "ABCD", "--as", "ann")
    assert "E_______" in result.output

    result = invoke("guess", "ABCD", "elephant", "--as", "bob")
    assert result.exit_code == 0
    assert "Guessers win" in result.output

    for command in ("players", "signulls", "history", "scores"):
        assert invoke(command, "ABCD").exit_code == 0


def test_rule_violation_exits_with_error():
    setup_game()
    result = invoke("signull", "ABCD", "elbow", "arm joint", "--as", "bob")
    assert result.exit_code == 1
    assert "NOT_YOUR_TURN" in result.output


def test_connect_without_active_signull():
    setup_game()
    result = invoke("connect", "ABCD", "elbow", "--as", "bob")
    assert result.exit_code == 1
    assert "no active signull" in result.output


def test_unknown_room():
    result = invoke("status", "NOPE")
    assert result.exit_code == 1
    assert "ROOM_NOT_FOUND" in result.output


def test_settings_in_lobby():
    assert invoke("create", "abcd", "--name", "Sam", "--as", "sam").exit_code == 0
    result = invoke("settings", "ABCD", "--as", "sam", "--connects", "2", "--mode", "signull", "--no-prefix")
    assert result.exit_code == 0

    with open(get_settings().data_dir + "/room_ABCD.json") as f:
        doc = json.load(f)
    assert doc["settings"]["connectsRequired"] == 2
    assert doc["settings"]["playMode"] == "signull"
    assert doc["settings"]["prefixMode"] is False


def test_autoplay_with_scripted_bots(data_dir):
    models = [
        {"name": "Sam", "provider": "scripted", "script": {"secret": "PLANET"}},
        {"name": "Ann", "provider": "scripted", "script": {"direct": ["PLANET"]}},
        {"name": "Bob", "provider": "scripted"},
    ]
    models_file = data_dir / "models.json"
    models_file.write_text(json.dumps(models))

    result = invoke("autoplay", "BOTS", "--models-file", str(models_file), "--max-signulls", "3")
    assert result.exit_code == 0
    assert "Winner: guessers" in result.output
