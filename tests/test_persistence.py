import asyncio
import json

from festival.common.data_manager import DataManager
from festival.market.persistence import SnapshotWriter


def test_load_missing_snapshot(tmp_path):
    dm = DataManager(base_path=tmp_path)
    assert dm.load_snapshot() is None


def test_load_corrupt_snapshot(tmp_path):
    dm = DataManager(base_path=tmp_path)
    dm.state_path.write_text("{not json", encoding="utf-8")
    assert dm.load_snapshot() is None
    dm.state_path.write_text("[1, 2]", encoding="utf-8")
    assert dm.load_snapshot() is None


def test_sync_save_and_load(tmp_path):
    dm = DataManager(base_path=tmp_path)
    dm.save_snapshot({"config": {"liquidity": 5}, "stocks": {}, "users": {}})
    assert dm.load_snapshot()["config"]["liquidity"] == 5
    assert not dm.state_path.with_suffix(".tmp").exists()


def test_burst_coalesces_into_one_write(tmp_path):
    dm = DataManager(base_path=tmp_path)
    state = {"n": 0}

    async def scenario():
        writer = SnapshotWriter(dm, lambda: dict(state), debounce_ms=30)
        for i in range(25):
            state["n"] = i
            writer.request()
            await asyncio.sleep(0.001)
        await asyncio.sleep(0.15)
        return writer

    writer = asyncio.run(scenario())
    assert writer.writes == 1
    assert writer.pending is False
    assert json.loads(dm.state_path.read_text(encoding="utf-8")) == {"n": 24}


def test_separate_windows_write_twice(tmp_path):
    dm = DataManager(base_path=tmp_path)

    async def scenario():
        writer = SnapshotWriter(dm, lambda: {"ok": True}, debounce_ms=10)
        writer.request()
        await asyncio.sleep(0.08)
        writer.request()
        await asyncio.sleep(0.08)
        return writer

    assert asyncio.run(scenario()).writes == 2


def test_request_without_loop_waits_for_flush(tmp_path):
    dm = DataManager(base_path=tmp_path)
    writer = SnapshotWriter(dm, lambda: {"v": 1})
    writer.request()
    writer.request()
    assert not dm.state_path.exists()
    writer.flush()
    writer.flush()
    assert writer.writes == 1
    assert dm.load_snapshot() == {"v": 1}


def test_aflush_writes_pending(tmp_path):
    dm = DataManager(base_path=tmp_path)

    async def scenario():
        writer = SnapshotWriter(dm, lambda: {"v": 2}, debounce_ms=10000)
        writer.request()
        await writer.aflush()
        return writer

    assert asyncio.run(scenario()).writes == 1
    assert dm.load_snapshot() == {"v": 2}


class BrokenStore(DataManager):
    def save_snapshot(self, data):
        raise OSError("disk full")

    async def async_save_snapshot(self, data):
        raise RuntimeError("保存快照失败: disk full")


def test_save_failures_are_logged_not_raised(tmp_path, caplog):
    dm = BrokenStore(base_path=tmp_path)

    async def scenario():
        writer = SnapshotWriter(dm, lambda: {}, debounce_ms=5)
        writer.request()
        await asyncio.sleep(0.05)
        return writer

    writer = asyncio.run(scenario())
    assert writer.writes == 0
    writer.request()
    writer.flush()
    assert writer.writes == 0
    assert caplog.text.count("snapshot save failed") == 2


def test_steady_stream_still_writes(tmp_path):
    dm = DataManager(base_path=tmp_path)

    async def scenario():
        writer = SnapshotWriter(dm, lambda: {"x": 1}, debounce_ms=30, max_wait_ms=60)
        for _ in range(25):
            writer.request()
            await asyncio.sleep(0.01)
        return writer.writes

    # requests every 10ms never leave a quiet 30ms window
    assert asyncio.run(scenario()) >= 2
