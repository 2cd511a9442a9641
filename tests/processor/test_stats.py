"""Tests for ProcessingStats."""

from docproc.processor import ProcessingStats


def test_counts_started_and_completed(snapshot_factory):
    stats = ProcessingStats()
    snapshot = snapshot_factory({"input": "x"}, path="records/a")

    stats.pre_process(snapshot)
    stats.pre_process(snapshot_factory({"input": "y"}, path="records/b"))
    stats.post_process(snapshot)

    assert stats.started == 2
    assert stats.completed == 1
    assert stats.unfinished == 1
    assert stats.completion_rate == 50.0
    assert stats.paths == ["records/a", "records/b"]


def test_to_dict_before_any_work():
    data = ProcessingStats().to_dict()

    assert data == {
        "started": 0,
        "completed": 0,
        "unfinished": 0,
        "first_started_at": None,
        "last_completed_at": None,
    }
    assert ProcessingStats().completion_rate == 0.0
