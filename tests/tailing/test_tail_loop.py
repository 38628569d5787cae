"""Tests for TailLoop."""

import asyncio
from pathlib import Path
from unittest.mock import patch

import pytest

from mcdash.tailing.config import TailConfig
from mcdash.tailing.cursor_store import CursorStore
from mcdash.tailing.errors import SetupFailure, TransientReadFailure
from mcdash.tailing.models import Heartbeat, LevelFilter, LogRecord, Severity, Subscription
from mcdash.tailing.registry import SubscriptionRegistry
from mcdash.tailing.tail_loop import (
    MISSING_NOTICE,
    ROTATED_NOTICE,
    WAITING_NOTICE,
    TailLoop,
    TailState,
)


def append(path: Path, *lines: str) -> None:
    with path.open("a") as f:
        for line in lines:
            f.write(line + "\n")


def drain(queue: asyncio.Queue) -> list:
    units = []
    while not queue.empty():
        units.append(queue.get_nowait())
    return units


def make_loop(
    path: Path,
    registry: SubscriptionRegistry,
    cursors: CursorStore,
    config: TailConfig,
    level_filter: LevelFilter = LevelFilter.INFO,
    subscription_id: str = "sub-1",
) -> TailLoop:
    subscription = Subscription(
        id=subscription_id,
        level_filter=level_filter,
        queue=asyncio.Queue(maxsize=config.max_queue_size),
    )
    return TailLoop(subscription, path, registry=registry, cursors=cursors, config=config)


class TestTailLoopStart:
    """Tests for subscription start-up."""

    @pytest.mark.asyncio
    async def test_start_emits_filtered_backlog(
        self, log_file: Path, registry, cursors, manual_config
    ) -> None:
        """Test that the backlog is filtered and the cursor lands at end of file."""
        loop = make_loop(log_file, registry, cursors, manual_config, LevelFilter.INFO)

        await loop.start()
        units = drain(loop.subscription.queue)

        assert len(units) == 1
        assert units[0].severity is Severity.INFO
        assert "[Server thread/INFO]" in units[0].text
        assert loop.state is TailState.POLLING
        assert registry.is_active("sub-1")
        assert cursors.get("sub-1").offset == log_file.stat().st_size

        loop.stop()

    @pytest.mark.asyncio
    async def test_start_empty_file_emits_waiting_notice(
        self, empty_log_file: Path, registry, cursors, manual_config
    ) -> None:
        loop = make_loop(empty_log_file, registry, cursors, manual_config)

        await loop.start()

        assert drain(loop.subscription.queue) == [LogRecord.system(WAITING_NOTICE)]
        assert cursors.get("sub-1").offset == 0

        loop.stop()

    @pytest.mark.asyncio
    async def test_start_replays_only_the_window(
        self, tmp_path: Path, registry, cursors
    ) -> None:
        """Test that a new subscriber sees recent context, not the whole file."""
        log_file = tmp_path / "latest.log"
        append(log_file, *[f"[12:00:00] [Server thread/INFO]: line {i:03d}" for i in range(100)])
        config = TailConfig(
            poll_interval_seconds=3600, keepalive_interval_seconds=3600, initial_window_bytes=200
        )
        loop = make_loop(log_file, registry, cursors, config)

        await loop.start()
        units = drain(loop.subscription.queue)

        assert 0 < len(units) < 100
        assert units[-1].text.endswith("line 099")
        assert cursors.get("sub-1").offset == log_file.stat().st_size

        loop.stop()

    @pytest.mark.asyncio
    async def test_start_missing_file_is_setup_failure(
        self, tmp_path: Path, registry, cursors, manual_config
    ) -> None:
        loop = make_loop(tmp_path / "missing.log", registry, cursors, manual_config)

        with pytest.raises(SetupFailure, match="Error starting log stream"):
            await loop.start()

        assert not registry.is_active("sub-1")
        assert "sub-1" not in cursors
        assert loop.state is TailState.STOPPED

    @pytest.mark.asyncio
    async def test_start_twice(self, log_file: Path, registry, cursors, manual_config) -> None:
        loop = make_loop(log_file, registry, cursors, manual_config)
        await loop.start()

        with pytest.raises(RuntimeError):
            await loop.start()

        loop.stop()


class TestTailLoopTick:
    """Tests for single poll cycles."""

    @pytest.mark.asyncio
    async def test_tick_delivers_appended_lines_once(
        self, empty_log_file: Path, registry, cursors, manual_config
    ) -> None:
        """Test that appended lines are delivered and never re-emitted."""
        loop = make_loop(empty_log_file, registry, cursors, manual_config, LevelFilter.INFO)
        await loop.start()
        drain(loop.subscription.queue)

        append(empty_log_file, "[12:00:00] [Server thread/INFO]: Hello")

        assert await loop.tick() == 1
        assert drain(loop.subscription.queue) == [
            LogRecord(severity=Severity.INFO, text="[12:00:00] [Server thread/INFO]: Hello")
        ]
        assert await loop.tick() == 0
        assert drain(loop.subscription.queue) == []

        loop.stop()

    @pytest.mark.asyncio
    async def test_offset_advances_past_filtered_lines(
        self, empty_log_file: Path, registry, cursors, manual_config
    ) -> None:
        loop = make_loop(empty_log_file, registry, cursors, manual_config, LevelFilter.ERROR)
        await loop.start()
        drain(loop.subscription.queue)

        append(
            empty_log_file,
            "[12:00:00] [Server thread/INFO]: Preparing spawn area",
            "[12:00:01] [Server thread/WARN]: Can't keep up!",
        )

        assert await loop.tick() == 0
        assert cursors.get("sub-1").offset == empty_log_file.stat().st_size

        loop.stop()

    @pytest.mark.asyncio
    async def test_offset_is_monotonic(
        self, empty_log_file: Path, registry, cursors, manual_config
    ) -> None:
        loop = make_loop(empty_log_file, registry, cursors, manual_config, LevelFilter.ALL)
        await loop.start()

        offsets = []
        for i in range(5):
            append(empty_log_file, f"[12:00:0{i}] [Server thread/INFO]: tick {i}")
            await loop.tick()
            await loop.tick()
            offsets.append(cursors.get("sub-1").offset)

        assert offsets == sorted(offsets)
        assert offsets[-1] == empty_log_file.stat().st_size

        loop.stop()

    @pytest.mark.asyncio
    async def test_rotation_resets_offset_with_one_notice(
        self, tmp_path: Path, registry, cursors, manual_config
    ) -> None:
        """Test a 500-byte file replaced by a 100-byte file."""
        log_file = tmp_path / "latest.log"
        log_file.write_text("a" * 499 + "\n")
        loop = make_loop(log_file, registry, cursors, manual_config, LevelFilter.ALL)
        await loop.start()
        drain(loop.subscription.queue)
        assert cursors.get("sub-1").offset == 500

        prefix = "[12:00:02] [Server thread/INFO]: "
        new_line = prefix + "b" * (99 - len(prefix))
        log_file.write_text(new_line + "\n")
        assert log_file.stat().st_size == 100

        await loop.tick()
        units = drain(loop.subscription.queue)

        assert units == [
            LogRecord.system(ROTATED_NOTICE),
            LogRecord(severity=Severity.INFO, text=new_line),
        ]
        cursor = cursors.get("sub-1")
        assert cursor.offset == 100
        assert cursor.rotated is True
        assert cursor.rotation_count == 1

        assert await loop.tick() == 0

        loop.stop()

    @pytest.mark.asyncio
    async def test_missing_file_keeps_subscription_alive(
        self, log_file: Path, registry, cursors, manual_config
    ) -> None:
        loop = make_loop(log_file, registry, cursors, manual_config, LevelFilter.INFO)
        await loop.start()
        drain(loop.subscription.queue)

        log_file.unlink()

        assert await loop.tick() == 1
        assert await loop.tick() == 1
        assert drain(loop.subscription.queue) == [LogRecord.system(MISSING_NOTICE)] * 2
        assert loop.state is TailState.SOURCE_MISSING
        assert registry.is_active("sub-1")

        log_file.write_text("[12:00:05] [Server thread/INFO]: Back\n")
        await loop.tick()

        assert loop.state is TailState.POLLING
        assert drain(loop.subscription.queue) == [
            LogRecord.system(ROTATED_NOTICE),
            LogRecord(severity=Severity.INFO, text="[12:00:05] [Server thread/INFO]: Back"),
        ]

        loop.stop()

    @pytest.mark.asyncio
    async def test_read_failure_is_reported_and_retried(
        self, empty_log_file: Path, registry, cursors, manual_config
    ) -> None:
        loop = make_loop(empty_log_file, registry, cursors, manual_config, LevelFilter.INFO)
        await loop.start()
        drain(loop.subscription.queue)
        append(empty_log_file, "[12:00:00] [Server thread/INFO]: Hello")

        with patch.object(loop.reader, "read", side_effect=TransientReadFailure("disk hiccup")):
            assert await loop.tick() == 1

        assert drain(loop.subscription.queue) == [
            LogRecord.system("Error reading log file: disk hiccup")
        ]
        assert cursors.get("sub-1").offset == 0
        assert registry.is_active("sub-1")

        assert await loop.tick() == 1
        assert drain(loop.subscription.queue)[0].text.endswith("Hello")

        loop.stop()

    @pytest.mark.asyncio
    async def test_unregister_during_read_emits_nothing(
        self, empty_log_file: Path, registry, cursors, manual_config
    ) -> None:
        """Test that a tick whose subscription is removed mid-read writes nothing."""
        loop = make_loop(empty_log_file, registry, cursors, manual_config, LevelFilter.INFO)
        await loop.start()
        drain(loop.subscription.queue)
        append(empty_log_file, "[12:00:00] [Server thread/INFO]: Hello")
        real_read = loop.reader.read

        def read_then_disconnect(path, offset):
            registry.unregister("sub-1")
            return real_read(path, offset)

        async def run_inline(func, *args):
            return func(*args)

        with (
            patch.object(loop.reader, "read", side_effect=read_then_disconnect),
            patch("mcdash.tailing.tail_loop.asyncio.to_thread", run_inline),
        ):
            emitted = await loop.tick()

        assert emitted == 0
        assert drain(loop.subscription.queue) == []
        assert cursors.get("sub-1").offset == 0

        loop.stop()

    @pytest.mark.asyncio
    async def test_tick_after_stop_emits_nothing(
        self, empty_log_file: Path, registry, cursors, manual_config
    ) -> None:
        loop = make_loop(empty_log_file, registry, cursors, manual_config)
        await loop.start()
        drain(loop.subscription.queue)

        loop.stop()
        append(empty_log_file, "[12:00:00] [Server thread/INFO]: Hello")

        assert await loop.tick() == 0
        assert drain(loop.subscription.queue) == []

    @pytest.mark.asyncio
    async def test_full_queue_drops_oldest(self, empty_log_file: Path, registry, cursors) -> None:
        config = TailConfig(
            poll_interval_seconds=3600, keepalive_interval_seconds=3600, max_queue_size=2
        )
        loop = make_loop(empty_log_file, registry, cursors, config, LevelFilter.ALL)
        await loop.start()

        append(
            empty_log_file,
            "[12:00:00] [Server thread/INFO]: one",
            "[12:00:01] [Server thread/INFO]: two",
            "[12:00:02] [Server thread/INFO]: three",
        )
        await loop.tick()

        units = drain(loop.subscription.queue)
        assert [u.text.rsplit(" ", 1)[-1] for u in units] == ["two", "three"]

        loop.stop()


class TestTailLoopIndependence:
    """Tests for subscriptions sharing one file."""

    @pytest.mark.asyncio
    async def test_filters_are_independent(
        self, empty_log_file: Path, registry, cursors, manual_config
    ) -> None:
        info_loop = make_loop(
            empty_log_file, registry, cursors, manual_config, LevelFilter.INFO, "sub-info"
        )
        warn_loop = make_loop(
            empty_log_file, registry, cursors, manual_config, LevelFilter.WARN, "sub-warn"
        )
        await info_loop.start()
        await warn_loop.start()
        drain(info_loop.subscription.queue)
        drain(warn_loop.subscription.queue)

        append(
            empty_log_file,
            "[12:00:00] [Server thread/INFO]: Player joined",
            "[12:00:01] [Server thread/WARN]: Player moved too quickly",
            "[12:00:02] [Server thread/INFO]: Player left",
        )
        await info_loop.tick()
        await warn_loop.tick()

        info_units = drain(info_loop.subscription.queue)
        warn_units = drain(warn_loop.subscription.queue)
        assert [u.severity for u in info_units] == [Severity.INFO, Severity.INFO]
        assert [u.severity for u in warn_units] == [Severity.WARN]
        size = empty_log_file.stat().st_size
        assert cursors.get("sub-info").offset == size
        assert cursors.get("sub-warn").offset == size

        info_loop.stop()
        assert warn_loop.active
        warn_loop.stop()


class TestTailLoopTimers:
    """Tests for the poll and keep-alive tasks."""

    @pytest.mark.asyncio
    async def test_poll_task_delivers_appended_lines(
        self, empty_log_file: Path, registry, cursors
    ) -> None:
        config = TailConfig(poll_interval_seconds=0.01, keepalive_interval_seconds=3600)
        loop = make_loop(empty_log_file, registry, cursors, config)
        await loop.start()
        drain(loop.subscription.queue)

        append(empty_log_file, "[12:00:00] [Server thread/INFO]: Hello")
        unit = await asyncio.wait_for(loop.subscription.queue.get(), timeout=2.0)

        assert unit == LogRecord(
            severity=Severity.INFO, text="[12:00:00] [Server thread/INFO]: Hello"
        )

        loop.stop()

    @pytest.mark.asyncio
    async def test_keepalive_task_emits_heartbeat(
        self, log_file: Path, registry, cursors
    ) -> None:
        config = TailConfig(poll_interval_seconds=3600, keepalive_interval_seconds=0.01)
        loop = make_loop(log_file, registry, cursors, config)
        await loop.start()
        drain(loop.subscription.queue)

        unit = await asyncio.wait_for(loop.subscription.queue.get(), timeout=2.0)

        assert unit == Heartbeat()

        loop.stop()

    @pytest.mark.asyncio
    async def test_no_emission_after_unregister(
        self, empty_log_file: Path, registry, cursors
    ) -> None:
        """Test that neither timer fires once the subscription is gone."""
        config = TailConfig(poll_interval_seconds=0.01, keepalive_interval_seconds=0.01)
        loop = make_loop(empty_log_file, registry, cursors, config)
        await loop.start()
        await asyncio.sleep(0.05)

        assert loop.stop() is True
        drain(loop.subscription.queue)

        append(empty_log_file, "[12:00:00] [Server thread/INFO]: After disconnect")
        await asyncio.sleep(0.1)

        assert drain(loop.subscription.queue) == []
        assert loop._poll_task.done()
        assert loop._keepalive_task.done()
        assert "sub-1" not in cursors
        assert loop.stop() is False
        assert loop.state is TailState.STOPPED
