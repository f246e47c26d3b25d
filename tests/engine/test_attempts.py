from geohunt.engine.attempts import TaskAttemptLog
from geohunt.engine.scheduler import VirtualScheduler
from tests.test_utils import at


def test_records_are_append_only_and_stamped():
    clock = VirtualScheduler(start_ms=100)
    log = TaskAttemptLog(clock=clock)

    first = log.record("alpha", "t1", at(), "wrong")
    clock.advance(50)
    second = log.record("alpha", "t1", None, "correct")

    assert (first.sequence, first.stamped_at) == (0, 100)
    assert (second.sequence, second.stamped_at) == (1, 150)
    assert list(log) == [first, second]
    assert len(log) == 2


def test_first_to_complete_uses_server_stamp_not_arrival_order():
    log = TaskAttemptLog(clock=VirtualScheduler())

    # bravo's answer arrives first but carries the later server stamp
    _ = log.record("bravo", "bridge", None, "correct", stamped_at=2_000)
    _ = log.record("alpha", "bridge", None, "wrong", stamped_at=1_000)
    _ = log.record("alpha", "bridge", None, "correct", stamped_at=1_500)

    first = log.first_to_complete("bridge")
    assert first is not None
    assert first.team_id == "alpha"
    assert log.completed_by("bridge") == ["alpha", "bravo"]


def test_equal_stamps_fall_back_to_sequence():
    log = TaskAttemptLog(clock=VirtualScheduler())
    _ = log.record("charlie", "t", None, "correct", stamped_at=10)
    _ = log.record("alpha", "t", None, "correct", stamped_at=10)

    assert log.first_to_complete("t").team_id == "charlie"


def test_answer_queries():
    log = TaskAttemptLog(clock=VirtualScheduler())
    _ = log.record("alpha", "t1", None, "submitted")
    _ = log.record("bravo", "t2", None, "correct")

    assert log.has_answered("alpha", "t1")
    assert not log.has_correct("alpha", "t1")
    assert log.has_correct("bravo", "t2")
    assert not log.has_answered("alpha", "t2")
    assert log.first_to_complete("t1") is None
    assert [a.task_id for a in log.attempts_for("bravo")] == ["t2"]
    assert log.attempts_on("missing") == []
