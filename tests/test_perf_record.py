from datetime import datetime
from pathlib import Path

import pytest

from counters import perf_record
from counters.event_catalog import TOPDOWN_RETIRING, recording_events
from counters.perf_record import build_perf_stat_cmd, record_counters
from counters.record_files import resolve_record_path, rotate_existing
from perfdiag.errors import RecordingError


class _FakeProc:
    def __init__(self, cmd, exit_code=0, write=True):
        self.cmd = cmd
        self._exit_code = exit_code
        if write:
            out = Path(cmd[cmd.index("-o") + 1])
            out.write_text("  100  cycles\n  0.1 seconds time elapsed\n", encoding="utf-8")

    def wait(self):
        return self._exit_code


def _fake_popen(calls, exit_code=0, write=True):
    def popen(cmd, cwd=None, env=None):
        calls.append({"cmd": cmd, "cwd": cwd, "env": env})
        return _FakeProc(cmd, exit_code=exit_code, write=write)

    return popen


def test_resolve_record_path() -> None:
    assert resolve_record_path("gemm") == Path("gemm.txt")
    assert resolve_record_path("gemm.txt") == Path("gemm.txt")
    assert resolve_record_path("runs/v1.2") == Path("runs/v1.2.txt")
    assert resolve_record_path("gemm", Path("/data")) == Path("/data/gemm.txt")


def test_rotate_existing_uses_timestamp(tmp_path: Path) -> None:
    record = tmp_path / "gemm.txt"
    assert rotate_existing(record) is None
    record.write_text("old", encoding="utf-8")
    now = datetime(2025, 3, 11, 14, 2, 17)
    backup = rotate_existing(record, now=now)
    assert backup == tmp_path / "gemm_20250311_140217.txt"
    assert backup.read_text(encoding="utf-8") == "old"
    assert not record.exists()

    record.write_text("newer", encoding="utf-8")
    second = rotate_existing(record, now=now)
    assert second == tmp_path / "gemm_20250311_140217_1.txt"


def test_build_perf_stat_cmd() -> None:
    cmd = build_perf_stat_cmd(["./gemm", "4096"], Path("out.txt"), ["cycles", "instructions"])
    assert cmd == ["perf", "stat", "-e", "cycles,instructions", "-o", "out.txt", "--", "./gemm", "4096"]
    wide = build_perf_stat_cmd(["./gemm"], Path("out.txt"), ["cycles"], system_wide=True)
    assert wide[wide.index("--") - 1] == "-a"


def test_record_counters_runs_perf(tmp_path: Path, monkeypatch) -> None:
    calls = []
    monkeypatch.setattr(perf_record.shutil, "which", lambda name: "/usr/bin/perf")
    monkeypatch.setattr(perf_record.psutil, "Popen", _fake_popen(calls))
    output = tmp_path / "gemm.txt"
    output.write_text("previous", encoding="utf-8")

    result = record_counters(["./gemm", "4096"], output, env_overrides={"OMP_NUM_THREADS": "56"})

    assert result.record_path == str(output)
    assert result.backup_path is not None
    assert Path(result.backup_path).read_text(encoding="utf-8") == "previous"
    assert result.exit_code == 0
    assert result.events == recording_events()
    cmd = calls[0]["cmd"]
    assert cmd[0] == "/usr/bin/perf"
    assert cmd[-2:] == ["./gemm", "4096"]
    assert "-a" not in cmd
    assert TOPDOWN_RETIRING not in cmd[3]
    assert calls[0]["env"]["OMP_NUM_THREADS"] == "56"


def test_record_counters_system_wide_adds_topdown(tmp_path: Path, monkeypatch) -> None:
    calls = []
    monkeypatch.setattr(perf_record.shutil, "which", lambda name: "/usr/bin/perf")
    monkeypatch.setattr(perf_record.psutil, "Popen", _fake_popen(calls))
    result = record_counters(["./gemm"], tmp_path / "wide.txt", system_wide=True)
    assert TOPDOWN_RETIRING in result.events
    assert "-a" in calls[0]["cmd"]


def test_nonzero_exit_with_record_is_kept(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(perf_record.shutil, "which", lambda name: "/usr/bin/perf")
    monkeypatch.setattr(perf_record.psutil, "Popen", _fake_popen([], exit_code=3))
    result = record_counters(["./crash"], tmp_path / "crash.txt")
    assert result.exit_code == 3


def test_missing_perf_binary(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(perf_record.shutil, "which", lambda name: None)
    with pytest.raises(RecordingError):
        record_counters(["./gemm"], tmp_path / "gemm.txt")


def test_no_record_written(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(perf_record.shutil, "which", lambda name: "/usr/bin/perf")
    monkeypatch.setattr(perf_record.psutil, "Popen", _fake_popen([], exit_code=255, write=False))
    with pytest.raises(RecordingError):
        record_counters(["./gemm"], tmp_path / "gemm.txt")


def test_launch_failure(tmp_path: Path, monkeypatch) -> None:
    def popen(cmd, cwd=None, env=None):
        raise PermissionError("perf_event_paranoid")

    monkeypatch.setattr(perf_record.shutil, "which", lambda name: "/usr/bin/perf")
    monkeypatch.setattr(perf_record.psutil, "Popen", popen)
    with pytest.raises(RecordingError):
        record_counters(["./gemm"], tmp_path / "gemm.txt")


def test_empty_command_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(RecordingError):
        record_counters([], tmp_path / "gemm.txt")
