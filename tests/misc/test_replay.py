from pathlib import Path

import cappa
import msgspec
import pytest

from geohunt.cli.commands.replay import ReplayCommand
from geohunt.simulation.config import GameConfig
from geohunt.simulation.runner import run_replay

PARK_HUNT = """
duration_ms = 70000

[game]
game_id = "park-hunt"

[[game.tasks]]
id = "fountain"
title = "Fountain"
reward_points = 50
hint_cost = 10
geofence = { center = { lat = 52.52, lng = 13.405 }, radius_meters = 30.0 }

[[game.tasks]]
id = "statue"
activation_types = ["qr"]
reward_points = 30
geofence = { center = { lat = 52.5195, lng = 13.406 }, radius_meters = 20.0 }

[[game.danger_zones]]
id = "pond"
title = "Duck Pond"
center = { lat = 52.521, lng = 13.405 }
radius_meters = 40.0
penalty_magnitude = 5
grace_seconds = 2

[[teams]]
id = "alpha"
name = "Foxes"
members = ["fox-1"]

[[teams]]
id = "bravo"
name = "Owls"
members = ["owl-1"]

[[tracks]]
team_id = "alpha"
samples = [
    { at_ms = 0, lat = 52.52, lng = 13.405 },
    { at_ms = 60000, lat = 52.521, lng = 13.405 },
    { at_ms = 66500 },
]

[[tracks]]
team_id = "bravo"
samples = [
    { at_ms = 0, lat = 52.53, lng = 13.405 },
    { at_ms = 1000, lat = 52.52, lng = 13.405, accuracy = 4.0 },
]

[[actions]]
at_ms = 1500
team_id = "alpha"
kind = "activate"
task_id = "fountain"
method = "proximity"

[[actions]]
at_ms = 2000
team_id = "alpha"
kind = "answer"
task_id = "fountain"
correct = true

[[actions]]
at_ms = 3000
team_id = "alpha"
kind = "hint"
task_id = "fountain"

[[actions]]
at_ms = 4000
team_id = "bravo"
kind = "activate"
task_id = "fountain"
method = "proximity"

[[actions]]
at_ms = 4500
team_id = "bravo"
kind = "answer"
task_id = "fountain"
correct = true

[[actions]]
at_ms = 5000
team_id = "bravo"
kind = "activate"
task_id = "statue"
method = "qr"

[[actions]]
at_ms = 6000
team_id = "bravo"
kind = "answer"
task_id = "statue"
correct = true

[[actions]]
at_ms = 7000
team_id = "alpha"
kind = "answer"
task_id = "statue"
correct = true
"""


@pytest.fixture
def config() -> GameConfig:
    return msgspec.toml.decode(PARK_HUNT, type=GameConfig)


def test_config_decodes(config: GameConfig):
    assert config.repr == "park-hunt: 2 teams, 2 tasks, 1 zones"
    assert config.game.task("statue").activation_types == frozenset({"qr"})
    assert config.tracks[0].samples[2].position is None
    assert config.end_ms == 70_000
    assert config.settings.to_engine().detection_interval_ms == 500


def test_default_end_is_one_second_after_last_input(config: GameConfig):
    open_ended = msgspec.structs.replace(config, duration_ms=None)
    assert open_ended.end_ms == 67_500


def test_hash_is_stable(config: GameConfig):
    again = msgspec.toml.decode(PARK_HUNT, type=GameConfig)
    assert config.compute_hash() == again.compute_hash()
    assert config.compute_hash() != msgspec.structs.replace(config, start_ms=5).compute_hash()


def test_invalid_coordinates_are_rejected():
    broken = PARK_HUNT.replace("lat = 52.5195", "lat = 95.0")
    with pytest.raises(msgspec.ValidationError):
        _ = msgspec.toml.decode(broken, type=GameConfig)


def test_replay_produces_standings(config: GameConfig):
    result = run_replay(config, progress=False)

    teams = {t.team_id: t for t in result.teams}
    alpha, bravo = teams["alpha"], teams["bravo"]

    # 50 reward, 10 hint, 4 seconds past the pond's grace period
    assert alpha.score == 20, f"Alpha ended on {alpha.score}"
    assert alpha.zone_penalty_total == 20
    assert alpha.hints_used == 1
    assert alpha.completed_task_ids == ["fountain"]
    assert alpha.impossible_travel_count == 0

    assert bravo.score == 80
    assert bravo.completed_task_ids == ["fountain", "statue"]
    assert bravo.impossible_travel_count == 1, "1.1 km in one second"

    assert [t.team_id for t in result.standings] == ["bravo", "alpha"]
    assert result.first_completions == {"fountain": "alpha", "statue": "bravo"}
    assert result.skipped_actions == 1, "Answering an unactivated task is skipped"
    assert result.simulated_ms == 70_000
    assert result.config_hash == config.compute_hash()


def test_replay_is_deterministic(config: GameConfig):
    first = run_replay(config, progress=False)
    second = run_replay(config, progress=False)
    assert [(t.team_id, t.score) for t in first.teams] == [
        (t.team_id, t.score) for t in second.teams
    ]


def test_cli_rejects_missing_file(tmp_path: Path):
    with pytest.raises(cappa.Exit):
        ReplayCommand(config_file=tmp_path / "missing.toml")()


def test_cli_rejects_invalid_toml(tmp_path: Path):
    path = tmp_path / "broken.toml"
    _ = path.write_text("[game\n")
    with pytest.raises(cappa.Exit):
        ReplayCommand(config_file=path)()


def test_cli_runs_replay(tmp_path: Path):
    path = tmp_path / "park.toml"
    _ = path.write_text(PARK_HUNT)
    ReplayCommand(config_file=path, duration=10)()
