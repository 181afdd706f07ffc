from datetime import datetime

from mysqlrelay.checkpoints import (
    format_entry,
    is_checkpointed,
    mark_checkpoint,
    read_checkpoints,
    reset_checkpoints,
)


def test_entry_format():
    assert format_entry("OS_CHECK", now=datetime(2025, 1, 31, 14, 2, 11)) == "[2025-01-31 14:02:11] COMPLETED: OS_CHECK"


def test_missing_log_means_nothing_completed(tmp_path):
    path = str(tmp_path / "cp.log")
    assert read_checkpoints(path) == []
    assert not is_checkpointed(path, "OS_CHECK")


def test_mark_appends(tmp_path):
    path = tmp_path / "nested" / "cp.log"
    mark_checkpoint(str(path), "OS_CHECK", clock=lambda: datetime(2025, 1, 1, 0, 0, 0))
    mark_checkpoint(str(path), "TUNNEL_CREATE", clock=lambda: datetime(2025, 1, 1, 0, 5, 0))

    assert path.read_text().splitlines() == [
        "[2025-01-01 00:00:00] COMPLETED: OS_CHECK",
        "[2025-01-01 00:05:00] COMPLETED: TUNNEL_CREATE",
    ]
    assert [e.step_name for e in read_checkpoints(str(path))] == ["OS_CHECK", "TUNNEL_CREATE"]


def test_step_names_are_matched_exactly(tmp_path):
    path = str(tmp_path / "cp.log")
    mark_checkpoint(path, "TUNNEL_CONFIG")
    assert is_checkpointed(path, "TUNNEL_CONFIG")
    assert not is_checkpointed(path, "TUNNEL")


def test_malformed_lines_are_ignored(tmp_path):
    path = tmp_path / "cp.log"
    path.write_text("garbage\n[2025-01-01 00:00:00] COMPLETED: OS_CHECK\n\n")
    assert [e.step_name for e in read_checkpoints(str(path))] == ["OS_CHECK"]


def test_reset(tmp_path):
    path = str(tmp_path / "cp.log")
    assert reset_checkpoints(path) is False
    mark_checkpoint(path, "OS_CHECK")
    assert reset_checkpoints(path) is True
    assert not is_checkpointed(path, "OS_CHECK")
