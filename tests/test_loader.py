"""Tests for single-flight detection model loading."""

from __future__ import annotations

import asyncio

import pytest

from photogate.errors import ModelLoadFailure
from photogate.ml.loader import DetectionModelLoader, ModelState

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeLoad:
    """Async load callable that counts invocations and can fail the first N."""

    def __init__(self, delay: float = 0.01, fail_times: int = 0) -> None:
        self.delay = delay
        self.fail_times = fail_times
        self.calls = 0
        self.locations: list[str] = []

    async def __call__(self, location: str) -> None:
        self.calls += 1
        self.locations.append(location)
        await asyncio.sleep(self.delay)
        if self.calls <= self.fail_times:
            raise OSError(f"cannot read {location}")


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestDetectionModelLoader:
    def test_starts_unloaded(self) -> None:
        loader = DetectionModelLoader(FakeLoad(), "/models/face.onnx")
        assert loader.state is ModelState.UNLOADED

    async def test_single_call_loads(self) -> None:
        load = FakeLoad()
        loader = DetectionModelLoader(load, "/models/face.onnx")
        await loader.ensure_loaded()
        assert loader.state is ModelState.LOADED
        assert load.calls == 1

    async def test_asset_location_passed_through_unchanged(self) -> None:
        load = FakeLoad()
        loader = DetectionModelLoader(load, "https://cdn.example.test/models/")
        await loader.ensure_loaded()
        assert load.locations == ["https://cdn.example.test/models/"]

    async def test_ten_concurrent_callers_share_one_load(self) -> None:
        load = FakeLoad(delay=0.05)
        loader = DetectionModelLoader(load, "face.onnx")

        await asyncio.gather(*(loader.ensure_loaded() for _ in range(10)))

        assert load.calls == 1
        assert loader.state is ModelState.LOADED

    async def test_loaded_returns_without_reloading(self) -> None:
        load = FakeLoad()
        loader = DetectionModelLoader(load, "face.onnx")
        await loader.ensure_loaded()
        await loader.ensure_loaded()
        await loader.ensure_loaded()
        assert load.calls == 1

    async def test_state_is_loading_while_in_flight(self) -> None:
        load = FakeLoad(delay=0.05)
        loader = DetectionModelLoader(load, "face.onnx")

        waiter = asyncio.create_task(loader.ensure_loaded())
        await asyncio.sleep(0)
        assert loader.state is ModelState.LOADING

        await waiter
        assert loader.state is ModelState.LOADED

    async def test_failure_reaches_every_waiter(self) -> None:
        load = FakeLoad(delay=0.02, fail_times=1)
        loader = DetectionModelLoader(load, "missing.onnx")

        results = await asyncio.gather(
            *(loader.ensure_loaded() for _ in range(5)),
            return_exceptions=True,
        )

        assert load.calls == 1
        assert all(isinstance(r, ModelLoadFailure) for r in results)
        assert isinstance(results[0].__cause__, OSError)  # type: ignore[union-attr]
        assert "missing.onnx" in str(results[0])
        assert loader.state is ModelState.UNLOADED

    async def test_retry_after_failure(self) -> None:
        load = FakeLoad(fail_times=1)
        loader = DetectionModelLoader(load, "flaky.onnx")

        with pytest.raises(ModelLoadFailure):
            await loader.ensure_loaded()
        await loader.ensure_loaded()

        assert load.calls == 2
        assert loader.state is ModelState.LOADED

    async def test_timeout_resolves_to_unloaded(self) -> None:
        load = FakeLoad(delay=1.0)
        loader = DetectionModelLoader(load, "slow.onnx", timeout=0.05)

        with pytest.raises(ModelLoadFailure, match="timed out"):
            await loader.ensure_loaded()

        assert loader.state is ModelState.UNLOADED

    async def test_zero_timeout_means_no_limit(self) -> None:
        load = FakeLoad(delay=0.02)
        loader = DetectionModelLoader(load, "face.onnx", timeout=0)
        await loader.ensure_loaded()
        assert loader.state is ModelState.LOADED

    async def test_cancelled_waiter_does_not_cancel_load(self) -> None:
        load = FakeLoad(delay=0.05)
        loader = DetectionModelLoader(load, "face.onnx")

        cancelled = asyncio.create_task(loader.ensure_loaded())
        survivor = asyncio.create_task(loader.ensure_loaded())
        await asyncio.sleep(0)
        cancelled.cancel()

        with pytest.raises(asyncio.CancelledError):
            await cancelled
        await survivor

        assert load.calls == 1
        assert loader.state is ModelState.LOADED
