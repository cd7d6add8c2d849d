from signull.game import selectors
from signull.game.insights import compute_insights
from signull.game.models import CreateSignull, DirectGuess, SubmitConnect, SubmitIntercept


def test_masked_word_and_quorum_preview(engine, new_game):
    room = new_game(guessers=5)
    assert selectors.masked_word(room) == "________"

    preview = selectors.quorum_preview(room)
    assert preview.active_guessers == 4
    assert preview.required == 3

    room = engine.apply(room, CreateSignull(actor_id="g1", word="ELBOW", clue="arm joint")).room
    room = engine.apply(room, SubmitConnect(actor_id="g2", reference_id="sn1", guess="ELBOW")).room
    assert selectors.connects_remaining(room.current_reference) == 2
    assert selectors.pending_connectors(room) == ["g3", "g4", "g5"]


def test_public_document_hides_secrets(engine, new_game):
    room = new_game()
    room = engine.apply(room, CreateSignull(actor_id="g1", word="ELBOW", clue="arm joint")).room
    room = engine.apply(room, SubmitConnect(actor_id="g2", reference_id="sn1", guess="KNEE")).room

    guesser_view = selectors.public_document(room, "g3")
    assert guesser_view["secretWord"] == "________"
    assert guesser_view["currentReference"]["word"] is None
    assert guesser_view["currentReference"]["connects"][0]["guess"] is None

    own_view = selectors.public_document(room, "g2")
    assert own_view["currentReference"]["connects"][0]["guess"] == "KNEE"

    giver_view = selectors.public_document(room, "g1")
    assert giver_view["currentReference"]["word"] == "ELBOW"

    setter_view = selectors.public_document(room, "setter")
    assert setter_view["secretWord"] == "ELEPHANT"
    assert setter_view["currentReference"]["word"] is None


def test_list_signulls_filters(engine, new_game):
    room = new_game(word="PLANET")
    room = engine.apply(room, CreateSignull(actor_id="g1", word="PLANT", clue="grows in a pot")).room
    room = engine.apply(room, SubmitIntercept(actor_id="setter", reference_id="sn1", guess="PLANT")).room
    room = engine.apply(room, CreateSignull(actor_id="g2", word="PIANO", clue="keys")).room

    assert [r.id for r in selectors.list_signulls(room)] == ["sn1", "sn2"]
    assert [r.id for r in selectors.list_signulls(room, "active")] == ["sn2"]
    assert [r.id for r in selectors.list_signulls(room, "intercepted")] == ["sn1"]
    assert selectors.list_signulls(room, "resolved") == []


def test_scoreboard_order(engine, new_game):
    room = new_game(word="PLANET")
    room = engine.apply(room, CreateSignull(actor_id="g1", word="PLANT", clue="grows in a pot")).room
    room = engine.apply(room, SubmitIntercept(actor_id="setter", reference_id="sn1", guess="PLANT")).room
    assert [p.id for p in selectors.scoreboard(room)] == ["setter", "g1", "g2", "g3"]


def test_insights_interceptor_and_fallback(engine, new_game):
    room = new_game(word="PLANET", guessers=2)
    giver = "g1"
    for i, word in enumerate(("PLANT", "PLUM", "PEAR"), start=1):
        room = engine.apply(room, CreateSignull(actor_id=giver, word=word, clue="some clue")).room
        room = engine.apply(room, SubmitIntercept(actor_id="setter", reference_id=f"sn{i}", guess=word)).room
        giver = room.rotation.clue_giver_id
    room = engine.apply(room, CreateSignull(actor_id=giver, word="PAINTER", clue="works with colour")).room
    other = "g2" if giver == "g1" else "g1"
    room = engine.apply(room, SubmitConnect(actor_id=other, reference_id="sn4", guess="PAINTER")).room
    room = engine.apply(room, DirectGuess(actor_id="g1", word="PLANET")).room

    insights = compute_insights(room)
    assert [i.type for i in insights] == ["og_interceptor", "longest_word_vibe"]
    assert insights[0].player_ids == ["setter"]
    assert insights[1].metadata["word"] == "PAINTER"
