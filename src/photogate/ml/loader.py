"""One-time, single-flight loading of the face detection model.

State machine::

    UNLOADED -> LOADING -> LOADED
       ^           |
       +-- failure-+

The first caller starts the load as a task; everyone arriving while it
runs awaits that same task. On failure the state goes back to UNLOADED so
the next call retries, and every waiter of the failed attempt gets the
same ``ModelLoadFailure``.
"""

from __future__ import annotations

import asyncio
import logging
from enum import StrEnum
from typing import TYPE_CHECKING

from photogate.errors import ModelLoadFailure

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class ModelState(StrEnum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"


class DetectionModelLoader:
    """Runs an async model load at most once at a time, shared by all callers."""

    def __init__(
        self,
        load: Callable[[str], Awaitable[None]],
        asset_location: str,
        *,
        timeout: float | None = None,
    ) -> None:
        self._load = load
        self._asset_location = asset_location
        self._timeout = timeout or None
        self._state = ModelState.UNLOADED
        self._task: asyncio.Task[None] | None = None

    @property
    def state(self) -> ModelState:
        return self._state

    @property
    def asset_location(self) -> str:
        return self._asset_location

    async def ensure_loaded(self) -> None:
        """Return once the model is loaded, starting the load if nobody has.

        Raises:
            ModelLoadFailure: If the load attempt this call waited on failed.
        """
        if self._state is ModelState.LOADED:
            return

        if self._task is None:
            self._state = ModelState.LOADING
            self._task = asyncio.ensure_future(self._run_load())

        # shield: a cancelled waiter must not cancel the load others are waiting on.
        await asyncio.shield(self._task)

    async def _run_load(self) -> None:
        logger.info("Loading detection model from %s", self._asset_location)
        try:
            if self._timeout is not None:
                await asyncio.wait_for(self._load(self._asset_location), timeout=self._timeout)
            else:
                await self._load(self._asset_location)
        except asyncio.CancelledError:
            self._reset()
            raise
        except Exception as exc:
            self._reset()
            logger.warning("Loading detection model from %s failed: %r", self._asset_location, exc)
            if isinstance(exc, TimeoutError):
                raise ModelLoadFailure(
                    f"Loading {self._asset_location} timed out after {self._timeout}s"
                ) from exc
            raise ModelLoadFailure(f"Loading {self._asset_location} failed: {exc}") from exc

        self._state = ModelState.LOADED
        logger.info("Detection model loaded from %s", self._asset_location)

    def _reset(self) -> None:
        self._state = ModelState.UNLOADED
        self._task = None
