from franchise_games.services.quiz_engine.ranking import (
    AWARD_FASTEST, AWARD_STREAK, resolve,
)

from conftest import answer


def player(pid, total, times, joined_at=1_000, streak=0, correct=None):
    correct = correct if correct is not None else [True] * len(times)
    answers = [
        {"questionId": f"q{i}", "timeTaken": t, "isCorrect": c, "scoreAwarded": 0}
        for i, (t, c) in enumerate(zip(times, correct))
    ]
    return {"playerId": pid, "totalScore": total, "answers": answers,
            "joinedAt": joined_at, "streak": streak}


def test_score_tie_broken_by_total_answer_time():
    players = [
        player("C", 95, [10, 10]),
        player("B", 120, [30, 22]),
        player("A", 120, [20, 25]),
    ]
    result = resolve(players)
    assert [(r["playerId"], r["rank"], r["totalScore"]) for r in result["ranked"]] == [
        ("A", 1, 120), ("B", 2, 120), ("C", 3, 95),
    ]
    assert [p["playerId"] for p in result["podium"]] == ["A", "B", "C"]


def test_residual_tie_broken_by_join_time():
    players = [
        player("late", 50, [5, 5], joined_at=2_000),
        player("early", 50, [4, 6], joined_at=1_500),
    ]
    ranked = resolve(players)["ranked"]
    assert [r["playerId"] for r in ranked] == ["early", "late"]


def test_podium_is_short_for_small_sessions():
    assert len(resolve([player("solo", 10, [3])])["podium"]) == 1
    two = resolve([player("a", 10, [3]), player("b", 20, [3])])
    assert [p["playerId"] for p in two["podium"]] == ["b", "a"]
    assert resolve([]) == {"ranked": [], "podium": [], "awards": []}


def test_podium_never_exceeds_three():
    players = [player(f"p{i}", i * 10, [1]) for i in range(6)]
    result = resolve(players)
    assert len(result["podium"]) == 3
    assert [p["rank"] for p in result["podium"]] == [1, 2, 3]
    assert [p["playerId"] for p in result["podium"]] == ["p5", "p4", "p3"]


def test_awards_record_all_tied_winners():
    players = [
        player("x", 30, [2, 4], streak=3),
        player("y", 20, [3, 3], streak=3),
        player("z", 10, [1, 9], streak=1),
    ]
    awards = {a["award"]: a for a in resolve(players)["awards"]}
    assert awards[AWARD_FASTEST]["playerIds"] == ["x", "y"]
    assert awards[AWARD_FASTEST]["value"] == 3
    assert awards[AWARD_STREAK]["playerIds"] == ["x", "y"]
    assert awards[AWARD_STREAK]["value"] == 3


def test_fastest_award_only_counts_correct_answers():
    players = [
        player("quick_but_wrong", 0, [1, 1], correct=[False, False]),
        player("steady", 20, [6, 8], correct=[True, False]),
    ]
    awards = {a["award"]: a for a in resolve(players)["awards"]}
    assert awards[AWARD_FASTEST]["playerIds"] == ["steady"]
    assert awards[AWARD_FASTEST]["value"] == 6
    assert AWARD_STREAK not in awards


def test_summary_fields_on_ranked_rows():
    p = {
        "playerId": "p1", "totalScore": 25, "streak": 2, "highestStreak": 2, "joinedAt": 5,
        "answers": [answer("q1", 10, 4), answer("q2", 15, 6), answer("q3", 0, 10, is_correct=False)],
    }
    row = resolve([p])["ranked"][0]
    assert row["goodAnswerCount"] == 2
    assert row["badAnswerCount"] == 1
    assert row["totalResponseTime"] == 20
    assert row["avgResponseTime"] == round(20 / 3, 3)


def test_order_does_not_depend_on_input_order():
    players = [
        player("A", 120, [30, 22], joined_at=3),
        player("B", 120, [26, 26], joined_at=2),
        player("C", 120, [20, 25], joined_at=1),
        player("D", 95, [1]),
    ]
    forward = [r["playerId"] for r in resolve(players)["ranked"]]
    backward = [r["playerId"] for r in resolve(list(reversed(players)))["ranked"]]
    assert forward == backward == ["C", "B", "A", "D"]
