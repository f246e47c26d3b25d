from geohunt.engine.gate import MultiTeamGate
from tests.test_utils import at, make_task

SUMMIT = make_task("summit", radius=40, required_team_count=3)
SOLO = make_task("solo", north=300)


def make_gate(**kwargs) -> MultiTeamGate:
    return MultiTeamGate.for_tasks([SUMMIT, SOLO], **kwargs)


def test_only_gated_tasks_are_tracked():
    gate = make_gate()
    assert list(gate.tasks) == ["summit"]
    assert gate.is_ready("solo"), "Ungated tasks are always ready"
    assert gate.progress("solo").required_count == 1


def test_ready_exactly_when_third_team_arrives():
    gate = make_gate()

    assert gate.observe("alpha", at(5), 100, 100) == []
    assert gate.observe("bravo", at(-5, 5), 110, 110) == []
    assert gate.progress("summit").current_count == 2
    assert not gate.is_ready("summit")

    flipped = gate.observe("charlie", at(0, -10), 120, 120)
    assert flipped == ["summit"]
    assert gate.is_ready("summit")
    assert gate.active_teams["summit"] == {"alpha", "bravo", "charlie"}


def test_team_moving_out_flips_back_immediately():
    gate = make_gate()
    for i, team in enumerate(("alpha", "bravo", "charlie")):
        _ = gate.observe(team, at(i), i, i)
    assert gate.is_ready("summit")

    flipped = gate.observe("bravo", at(200), 10, 10)

    assert flipped == ["summit"]
    assert gate.progress("summit").current_count == 2


def test_repeated_broadcasts_from_same_team_count_once():
    gate = make_gate()
    for stamp in range(5):
        _ = gate.observe("alpha", at(1), stamp, stamp)
    _ = gate.observe("bravo", at(2), 6, 6)

    assert gate.progress("summit").current_count == 2


def test_lost_position_leaves_the_gate():
    gate = make_gate()
    for i, team in enumerate(("alpha", "bravo", "charlie")):
        _ = gate.observe(team, at(), i, i)

    assert gate.observe("alpha", None, 10, 10) == ["summit"]
    assert "alpha" not in gate.active_teams["summit"]


def test_out_of_order_broadcast_is_ignored():
    gate = make_gate()
    _ = gate.observe("alpha", at(300), 2000, 2000)

    # Older packet arriving late must not put alpha back inside.
    assert gate.observe("alpha", at(), 1000, 2100) == []
    assert gate.progress("summit").current_count == 0
    assert gate.snapshots["alpha"].stamped_at == 2000


def test_stale_snapshots_are_pruned():
    gate = make_gate(stale_after_ms=2000)
    for i, team in enumerate(("alpha", "bravo", "charlie")):
        _ = gate.observe(team, at(), 500 * i, 500 * i)
    assert gate.is_ready("summit")

    # alpha was stamped at 0 and is stale at 2000
    assert gate.recompute(2000) == ["summit"]
    assert set(gate.snapshots) == {"bravo", "charlie"}


def test_forget_drops_a_team():
    gate = make_gate()
    for i, team in enumerate(("alpha", "bravo", "charlie")):
        _ = gate.observe(team, at(), i, i)

    assert gate.forget("charlie", 5) == ["summit"]
    assert gate.progress("summit").current_count == 2


def test_gate_end_to_end_two_teams(scenario):
    """Gated task needs two teams: alone not ready, pair ready, one leaves not ready."""
    plaza = make_task("plaza", radius=25, required_team_count=2)
    game = scenario(tasks=(plaza,), teams=("alpha", "bravo"))
    alpha = game.session("alpha")
    bravo = game.session("bravo")

    game.move("alpha", at(3))
    assert alpha.gate_progress("plaza").current_count == 1
    assert not alpha.gate_progress("plaza").ready
    assert alpha.activatable_tasks == [], "Gated task must wait for a second team"

    game.move("bravo", at(-4, 2))
    assert alpha.gate_progress("plaza").ready
    assert bravo.gate_progress("plaza").ready
    assert [t.id for t in alpha.activatable_tasks] == ["plaza"]
    assert [t.id for t in bravo.activatable_tasks] == ["plaza"]

    game.move("alpha", at(500))
    assert not bravo.gate_progress("plaza").ready
    assert bravo.activatable_tasks == []
    assert bravo.activate("plaza", "proximity") is False
