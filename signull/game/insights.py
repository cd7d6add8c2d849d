from pydantic import BaseModel, Field
from signull.game.models import GameRoom

MAX_INSIGHTS = 2


class Insight(BaseModel):
    type: str                    # dynamic_duo, og_interceptor, signull_machine, knows_it_all, longest_word_vibe
    player_ids: list[str]
    title: str
    subtitle: str
    metadata: dict = Field(default_factory=dict)
    priority: int = 5


def compute_insights(room: GameRoom) -> list[Insight]:
    """
    Highlights for the end-of-game screen, best two by priority.
    Falls back to the longest resolved signull word when fewer than two qualify.
    """
    players = room.players
    refs = list(room.references)
    resolved = [r for r in refs if r.status == "resolved"]
    intercepted = [r for r in refs if r.status == "intercepted"]
    guessers = [pid for pid, p in players.items() if p.role == "guesser"]

    def name(pid):
        return players[pid].name if pid in players else "Someone"

    insights = []

    # 1. Two guessers who connected on each other's signulls at least twice each
    mutual = {}
    for ref in refs:
        for connect in ref.correct_connects:
            key = (ref.clue_giver_id, connect.player_id)
            mutual[key] = mutual.get(key, 0) + 1
    pairs = []
    for i, a in enumerate(guessers):
        for b in guessers[i + 1:]:
            ab, ba = mutual.get((a, b), 0), mutual.get((b, a), 0)
            if ab >= 2 and ba >= 2:
                pairs.append((a, b, ab + ba))
    if pairs:
        best = max(total for _, _, total in pairs)
        for a, b, total in pairs:
            if total == best:
                insights.append(Insight(
                    type="dynamic_duo", player_ids=[a, b], priority=1,
                    title=f"{name(a)} & {name(b)} are on the same wavelength!",
                    subtitle=f"Connected on each other's signulls {total} times",
                    metadata={"connects": total},
                ))

    # 2. Setter who intercepted at least 70% of signulls
    if len(refs) >= 3 and room.setter_id:
        rate = len(intercepted) / len(refs)
        if rate >= 0.7:
            insights.append(Insight(
                type="og_interceptor", player_ids=[room.setter_id], priority=2,
                title=f"{name(room.setter_id)} is the OG Interceptor!",
                subtitle=f"Blocked {round(rate * 100)}% of all signulls",
                metadata={"percentage": round(rate * 100)},
            ))

    # 3. Creator of at least half the resolved signulls
    if len(resolved) >= 2:
        counts = {}
        for ref in resolved:
            counts[ref.clue_giver_id] = counts.get(ref.clue_giver_id, 0) + 1
        for pid, count in counts.items():
            if count / len(resolved) >= 0.5:
                insights.append(Insight(
                    type="signull_machine", player_ids=[pid], priority=3,
                    title=f"{name(pid)} is a Signull Machine!",
                    subtitle=f"Created {count} of {len(resolved)} resolved signulls",
                    metadata={"count": count, "total": len(resolved)},
                ))
                break

    # 4. Guesser with at least 70% correct connects over 3+ attempts
    stats = {}
    for ref in refs:
        for connect in ref.connects:
            correct, total = stats.get(connect.player_id, (0, 0))
            stats[connect.player_id] = (correct + int(connect.is_correct), total + 1)
    for pid, (correct, total) in stats.items():
        if total >= 3 and correct / total >= 0.7:
            insights.append(Insight(
                type="knows_it_all", player_ids=[pid], priority=4,
                title=f"{name(pid)} knows-it-all!",
                subtitle=f"Connected correctly {round(correct / total * 100)}% of the time",
                metadata={"correct": correct, "total": total},
            ))
            break

    insights.sort(key=lambda i: i.priority)
    top = insights[:MAX_INSIGHTS]

    if len(top) < MAX_INSIGHTS and resolved:
        longest = max(resolved, key=lambda r: len(r.word))
        top.append(Insight(
            type="longest_word_vibe", player_ids=[longest.clue_giver_id], priority=5,
            title=f"{name(longest.clue_giver_id)} made everyone vibe on \"{longest.word}\"!",
            subtitle=f"That's a {len(longest.word)}-letter connection.",
            metadata={"word": longest.word, "length": len(longest.word)},
        ))
    return top
