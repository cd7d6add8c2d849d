import asyncio
import threading
import pytest
from signull.game.errors import ConflictError, RoomNotFound
from signull.game.models import (
    CreateSignull,
    DirectGuess,
    JoinRoom,
    LeaveRoom,
    SetSecretWord,
    StartGame,
    SubmitConnect,
    SubmitIntercept,
)
from signull.service.rooms import RoomService
from signull.storage.json_store import JsonRoomStore


async def playing_room(service, guessers=5, word="ELEPHANT"):
    await service.open_room("abcd", "setter", "Sam")
    for i in range(1, guessers + 1):
        await service.execute("ABCD", JoinRoom(actor_id=f"g{i}", name=f"Guesser {i}"))
    await service.execute("ABCD", StartGame(actor_id="setter"))
    await service.execute("ABCD", SetSecretWord(actor_id="setter", word=word))
    result = await service.execute("ABCD", CreateSignull(actor_id="g1", word="ELBOW", clue="arm joint"))
    assert result.ok
    return result.room


async def test_open_room_twice():
    service = RoomService()
    room = await service.open_room("abcd", "setter", "Sam")
    assert room.room_id == "ABCD"
    with pytest.raises(ConflictError):
        await service.open_room("ABCD", "other", "Oli")


async def test_racing_connects_resolve_once():
    service = RoomService()
    await playing_room(service)

    commands = [
        SubmitConnect(actor_id=pid, reference_id="sn1", guess="ELBOW")
        for pid in ("g2", "g3", "g4", "g5")
    ]
    commands.append(SubmitIntercept(actor_id="setter", reference_id="sn1", guess="ELBOW"))
    results = await asyncio.gather(*(service.execute("abcd", c) for c in commands))

    room = await service.get_room("ABCD")
    ref = room.find_reference("sn1")
    assert ref.status == "resolved"
    assert len(ref.connects) == 3
    assert sum(r.ok for r in results) == 3
    assert {r.error_code for r in results if not r.ok} == {"STALE_REFERENCE"}
    assert room.revealed_count == 1
    assert room.players["g1"].score == 10


async def test_intercept_first_makes_connects_stale():
    service = RoomService()
    await playing_room(service)

    commands = [SubmitIntercept(actor_id="setter", reference_id="sn1", guess="ELBOW")]
    commands += [SubmitConnect(actor_id=pid, reference_id="sn1", guess="ELBOW") for pid in ("g2", "g3", "g4")]
    results = await asyncio.gather(*(service.execute("abcd", c) for c in commands))

    room = await service.get_room("ABCD")
    assert room.find_reference("sn1").status == "intercepted"
    assert room.revealed_count == 0
    assert [r.ok for r in results] == [True, False, False, False]


async def test_redelivered_command_applies_once():
    service = RoomService()
    await playing_room(service)

    command = DirectGuess(actor_id="g2", word="ELEVATOR", command_id="c-1")
    first = await service.execute("ABCD", command)
    second = await service.execute("ABCD", command)

    assert first.ok and second.ok
    assert second == first
    room = await service.get_room("ABCD")
    assert room.direct_guesses_left == 2


async def test_rejected_command_leaves_room_unchanged():
    service = RoomService()
    before = await playing_room(service)

    result = await service.execute("ABCD", SubmitConnect(actor_id="g1", reference_id="sn1", guess="ELBOW"))
    assert not result.ok
    assert result.error_code == "OWN_SIGNULL"
    after = await service.get_room("ABCD")
    assert after.model_dump() == before.model_dump()


async def test_unknown_room():
    service = RoomService()
    result = await service.execute("NOPE", JoinRoom(actor_id="g1", name="Ann"))
    assert not result.ok
    assert result.error_code == "ROOM_NOT_FOUND"


async def test_subscription_receives_snapshots():
    service = RoomService()
    await service.open_room("abcd", "setter", "Sam")
    subscription = service.subscribe("abcd")

    await service.execute("ABCD", JoinRoom(actor_id="g1", name="Ann"))
    room = await subscription.__anext__()
    assert "g1" in room.players
    subscription.close()


async def test_last_player_leaving_tears_down_room():
    service = RoomService()
    await service.open_room("abcd", "setter", "Sam")
    subscription = service.subscribe("ABCD")

    result = await service.execute("ABCD", LeaveRoom(actor_id="setter"))
    assert result.ok
    with pytest.raises(StopAsyncIteration):
        await subscription.__anext__()
    with pytest.raises(RoomNotFound):
        await service.get_room("ABCD")


async def test_json_store_persists_rooms(tmp_path):
    store = JsonRoomStore(str(tmp_path))
    service = RoomService(store)
    room = await playing_room(service, guessers=3)

    assert store.list_room_ids() == ["ABCD"]
    assert (tmp_path / "room_ABCD.json").exists()
    loaded = JsonRoomStore(str(tmp_path)).load_room("abcd")
    assert loaded.model_dump() == room.model_dump()

    assert store.delete_room("ABCD")
    assert store.list_room_ids() == []


async def test_close_room():
    service = RoomService()
    await service.open_room("abcd", "setter", "Sam")
    await service.close_room("abcd")
    with pytest.raises(RoomNotFound):
        await service.close_room("ABCD")


class SteppedStore(JsonRoomStore):
    """Holds the first load at a barrier so two services read the same revision."""

    def __init__(self, base_path, barrier):
        super().__init__(base_path)
        self.barrier = barrier
        self.loads = 0

    def load_room(self, room_id):
        room = super().load_room(room_id)
        self.loads += 1
        if self.loads == 1:
            self.barrier.wait(timeout=5)
        return room


async def test_services_sharing_a_directory_commit_one_outcome(tmp_path):
    await playing_room(RoomService(JsonRoomStore(str(tmp_path))))
    seed = RoomService(JsonRoomStore(str(tmp_path)))
    for pid in ("g2", "g3"):
        assert (await seed.execute("ABCD", SubmitConnect(actor_id=pid, reference_id="sn1", guess="ELBOW"))).ok

    barrier = threading.Barrier(2)
    setter_side = RoomService(SteppedStore(str(tmp_path), barrier))
    guesser_side = RoomService(SteppedStore(str(tmp_path), barrier))
    intercept, connect = await asyncio.gather(
        setter_side.execute("ABCD", SubmitIntercept(actor_id="setter", reference_id="sn1", guess="ELBOW")),
        guesser_side.execute("ABCD", SubmitConnect(actor_id="g4", reference_id="sn1", guess="ELBOW")),
    )

    assert intercept.ok != connect.ok
    loser = connect if intercept.ok else intercept
    assert loser.error_code == "STALE_REFERENCE"

    stored = JsonRoomStore(str(tmp_path)).load_room("ABCD")
    winner = intercept if intercept.ok else connect
    assert stored.model_dump() == winner.room.model_dump()
    if intercept.ok:
        assert stored.find_reference("sn1").status == "intercepted"
        assert stored.revealed_count == 0
    else:
        assert stored.find_reference("sn1").status == "resolved"
        assert stored.revealed_count == 1


async def test_stale_write_is_refused(tmp_path):
    store = JsonRoomStore(str(tmp_path))
    room = await playing_room(RoomService(store))

    store.save_room(room.model_copy(update={"revision": room.revision + 1}), expected_revision=room.revision)
    with pytest.raises(ConflictError) as exc:
        store.save_room(room, expected_revision=room.revision)
    assert exc.value.code == "STALE_WRITE"


async def test_redelivery_to_another_service_applies_once(tmp_path):
    await playing_room(RoomService(JsonRoomStore(str(tmp_path))))
    command = DirectGuess(actor_id="g2", word="ELEVATOR", command_id="c-1")

    first = await RoomService(JsonRoomStore(str(tmp_path))).execute("ABCD", command)
    second = await RoomService(JsonRoomStore(str(tmp_path))).execute("ABCD", command)

    assert first.ok and second.ok
    assert second.room.direct_guesses_left == 2
    assert second.room.revision == first.room.revision


async def test_slow_subscriber_keeps_latest_snapshots():
    service = RoomService()
    await service.open_room("abcd", "setter", "Sam")
    subscription = service.subscribe("ABCD", maxsize=2)

    for pid in ("g1", "g2", "g3"):
        await service.execute("ABCD", JoinRoom(actor_id=pid, name=pid))

    first = await subscription.__anext__()
    second = await subscription.__anext__()
    assert sorted(first.players) == ["g1", "g2", "setter"]
    assert sorted(second.players) == ["g1", "g2", "g3", "setter"]


async def test_teardown_forgets_room_state():
    service = RoomService()
    await playing_room(service)
    service.subscribe("ABCD")
    await service.execute("ABCD", SubmitConnect(actor_id="g2", reference_id="sn1", guess="KNEE"))

    await service.close_room("ABCD")
    assert service._room_locks == {}
    assert service._reference_locks == {}
    assert service._subscribers == {}
