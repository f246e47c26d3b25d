import pytest

from geohunt.core.state import LedgerState, ScoreDelta
from geohunt.engine.ledger import (
    ScoreLedger,
    apply_delta,
    clamp_score,
    replay,
    version_of,
)


def delta(amount: int, at_ms: int = 0, team_id: str = "alpha") -> ScoreDelta:
    return ScoreDelta(team_id=team_id, amount=amount, reason="adjustment", at_ms=at_ms)


def test_clamp_score():
    assert clamp_score(-5) == 0
    assert clamp_score(0) == 0
    assert clamp_score(17) == 17


def test_apply_delta_is_pure():
    state = LedgerState(team_id="alpha", score=10)
    new_state = apply_delta(state, delta(5, at_ms=40))

    assert state.score == 10, "Input state must not be mutated"
    assert new_state.score == 15
    assert new_state.revision == 1
    assert new_state.updated_at == 40


@pytest.mark.parametrize(
    "amounts",
    [
        [-1000],
        [50, -80, 10],
        [5, -3, -3, -3, 100, -250],
        [-1, -1, -1, 2],
    ],
)
def test_score_never_negative(amounts: list[int]):
    state = LedgerState(team_id="alpha", score=10)
    for amount in amounts:
        state = apply_delta(state, delta(amount))
        assert state.score >= 0


def test_clamping_is_order_dependent():
    start = LedgerState(team_id="alpha", score=10)

    first_loss = replay(start, [delta(-20), delta(30)])
    first_gain = replay(start, [delta(30), delta(-20)])

    assert first_loss.score == 30
    assert first_gain.score == 20


def test_delta_for_wrong_team_is_rejected():
    with pytest.raises(ValueError, match="bravo"):
        _ = apply_delta(LedgerState(team_id="alpha"), delta(5, team_id="bravo"))


def test_ledger_fires_callback_on_every_mutation():
    seen = []
    ledger = ScoreLedger(on_score_change=lambda team, score: seen.append((team, score)))
    _ = ledger.open_account("alpha", 5)

    _ = ledger.apply("alpha", 10, "task_reward", 100, "t1")
    _ = ledger.apply("alpha", -50, "zone_penalty", 200, "z1")

    assert seen == [("alpha", 15), ("alpha", 0)]
    assert [d.source_id for d in ledger.deltas_for("alpha")] == ["t1", "z1"]
    assert ledger.state("alpha").revision == 2


def test_journal_replays_to_current_state():
    ledger = ScoreLedger()
    _ = ledger.open_account("alpha", 20)
    _ = ledger.open_account("bravo")
    for i, amount in enumerate([15, -40, 7, 3]):
        _ = ledger.apply("alpha", amount, "adjustment", i)
    _ = ledger.apply("bravo", 99, "adjustment", 9)

    rebuilt = replay(LedgerState(team_id="alpha", score=20), ledger.deltas_for("alpha"))
    assert rebuilt == ledger.state("alpha")


def test_open_account_is_idempotent_and_clamps():
    ledger = ScoreLedger()
    assert ledger.open_account("alpha", -10).score == 0
    _ = ledger.apply("alpha", 4, "adjustment", 1)
    assert ledger.open_account("alpha", 50).score == 4


def test_unknown_team_raises():
    with pytest.raises(ValueError, match="No ledger account"):
        _ = ScoreLedger().score("ghost")


def test_adopt_only_takes_newer_snapshots_and_stays_silent():
    seen = []
    ledger = ScoreLedger(on_score_change=lambda team, score: seen.append(score))
    _ = ledger.open_account("alpha")
    _ = ledger.apply("alpha", 10, "task_reward", 1000)

    assert not ledger.adopt("alpha", 50, 900)
    assert not ledger.adopt("alpha", 50, 1000)
    assert ledger.adopt("alpha", 50, 1001)
    assert ledger.score("alpha") == 50
    assert seen == [10]


def test_adopt_orders_equal_stamps_by_revision_then_device():
    ledger = ScoreLedger()
    _ = ledger.open_account("alpha", 100)
    _ = ledger.apply("alpha", -10, "zone_penalty", 1000, "bog", device_id="phone")
    assert version_of(ledger.state("alpha")) == (1000, 1, "phone")

    assert not ledger.adopt("alpha", 80, 1000, revision=1, device_id="laptop")
    assert ledger.adopt("alpha", 80, 1000, revision=1, device_id="tablet")
    assert ledger.adopt("alpha", 75, 1000, revision=2, device_id="phone")
    assert not ledger.adopt("alpha", 75, 1000, revision=2, device_id="phone"), "Duplicate"

    assert ledger.score("alpha") == 75
    assert version_of(ledger.state("alpha")) == (1000, 2, "phone")
