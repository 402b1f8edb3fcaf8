from datetime import datetime
from pathlib import Path

import pytest

from stageguard.config import LoggingConfig
from stageguard.log import ActionLog, open_action_log


def test_record_appends_timestamped_lines(tmp_path: Path):
    action_log = ActionLog(tmp_path / "logs" / "stageguard-log.txt")
    action_log.record("StageGuard activated", when=datetime(2024, 5, 1, 12, 30, 0))
    action_log.record("multi\nline", when=datetime(2024, 5, 1, 12, 31, 0))
    assert action_log.path.read_text().splitlines() == [
        "[2024-05-01 12:30:00] StageGuard activated",
        "[2024-05-01 12:31:00] multi line",
    ]


def test_tail_returns_last_lines(tmp_path: Path):
    action_log = ActionLog(tmp_path / "stageguard-log.txt")
    for index in range(10):
        action_log.record(f"entry {index}")
    lines = action_log.tail(3)
    assert len(lines) == 3
    assert lines[-1].endswith("entry 9")
    assert lines[0].endswith("entry 7")
    assert len(action_log.tail(100)) == 10
    assert action_log.tail(0) == []


def test_tail_missing_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        ActionLog(tmp_path / "missing.txt").tail()


def test_open_action_log_resolves_relative_path(tmp_path: Path):
    assert open_action_log(LoggingConfig()) is None
    action_log = open_action_log(LoggingConfig(action_log="stageguard-log.txt"), tmp_path)
    assert action_log.path == tmp_path / "stageguard-log.txt"
