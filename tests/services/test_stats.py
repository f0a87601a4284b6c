"""Tests for StatsRecorder."""
import asyncio
import csv
import io

import pytest

from genbot.core.commands import Command
from genbot.core.config import StatsConfig
from genbot.services.stats import StatsRecorder


def read_rows(path):
    return list(csv.reader(io.StringIO(path.read_text(encoding="utf-8"))))


@pytest.fixture
def stats_path(tmp_path):
    return tmp_path / "stats" / "stats.csv"


@pytest.fixture
def recorder(stats_path):
    return StatsRecorder(StatsConfig(filepath=str(stats_path), flush_interval_seconds=3600))


class TestStatsRecorder:

    def test_record_buffers_generation_commands_only(self, recorder):
        recorder.record("alice", Command.CHATGPT, "hi", "hello")
        recorder.record("alice", Command.CANCEL_JOB, "123456", "canceled")
        recorder.record("alice", Command.START, "", "")

        assert recorder.pending == 1

    def test_flush_appends_rows(self, recorder, stats_path):
        recorder.record("alice", Command.CHATGPT, "hi", "line one\nline two")
        recorder.record("bob", Command.DREAMBOOTH, "a red fox", "")

        assert recorder.flush() == 2
        assert recorder.pending == 0

        rows = read_rows(stats_path)
        assert [r[1:] for r in rows] == [
            ["alice", "chatGPT", "line oneline two", "hi"],
            ["bob", "dreamBooth", "", "a red fox"],
        ]
        assert "T" in rows[0][0]

    def test_flush_appends_across_calls(self, recorder, stats_path):
        recorder.record("alice", Command.CHATGPT, "1", "a")
        recorder.flush()
        recorder.record("alice", Command.CHATGPT, "2", "b")
        recorder.flush()

        assert [r[4] for r in read_rows(stats_path)] == ["1", "2"]

    def test_snapshot_reflects_last_flush(self, recorder, stats_path):
        assert recorder.snapshot() is None

        recorder.record("alice", Command.CHATGPT, "hi", "hello")
        recorder.flush()

        assert recorder.snapshot() == stats_path.read_bytes()

    def test_failed_flush_keeps_rows(self, tmp_path):
        # A directory where the file should be makes open() fail
        path = tmp_path / "stats.csv"
        path.mkdir()
        recorder = StatsRecorder(StatsConfig(filepath=str(path)))
        recorder.record("alice", Command.CHATGPT, "hi", "hello")

        with pytest.raises(OSError):
            recorder.flush()
        assert recorder.pending == 1

    def test_failed_directory_creation_keeps_rows(self, tmp_path):
        # The parent "directory" is a regular file, so mkdir fails
        parent = tmp_path / "not-a-dir"
        parent.write_text("x")
        recorder = StatsRecorder(StatsConfig(filepath=str(parent / "stats.csv")))
        recorder.record("alice", Command.CHATGPT, "hi", "hello")

        with pytest.raises(OSError):
            recorder.flush()
        assert recorder.pending == 1

    def test_rows_recorded_after_failure_follow_kept_rows(self, tmp_path):
        path = tmp_path / "stats.csv"
        path.mkdir()
        recorder = StatsRecorder(StatsConfig(filepath=str(path)))
        recorder.record("alice", Command.CHATGPT, "1", "a")
        with pytest.raises(OSError):
            recorder.flush()

        path.rmdir()
        recorder.record("alice", Command.CHATGPT, "2", "b")

        assert recorder.flush() == 2
        assert [r[4] for r in read_rows(path)] == ["1", "2"]

    def test_timezone(self, stats_path):
        recorder = StatsRecorder(StatsConfig(filepath=str(stats_path), timezone="Europe/Moscow"))
        recorder.record("alice", Command.CHATGPT, "hi", "hello")
        recorder.flush()

        assert read_rows(stats_path)[0][0].endswith("+03:00")

    @pytest.mark.asyncio
    async def test_start_creates_file_and_stop_flushes(self, recorder, stats_path):
        await recorder.start()
        assert stats_path.exists()
        assert recorder.snapshot() == b""

        recorder.record("alice", Command.OPENAI_TEXT, "hi", "hello")
        await recorder.stop()

        assert len(read_rows(stats_path)) == 1

    @pytest.mark.asyncio
    async def test_periodic_flush(self, stats_path):
        recorder = StatsRecorder(StatsConfig(filepath=str(stats_path), flush_interval_seconds=0.01))
        await recorder.start()
        recorder.record("alice", Command.CHATGPT, "hi", "hello")

        await asyncio.sleep(0.1)

        assert recorder.pending == 0
        assert len(read_rows(stats_path)) == 1
        await recorder.stop()
