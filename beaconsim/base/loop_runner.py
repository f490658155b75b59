import asyncio
import random
from abc import ABC, abstractmethod
from typing import Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator


class AsyncLoopRunner(BaseModel, ABC):
    """
    Runs `run_step` repeatedly with a jittered pause between steps.

    `stop_event` is the cancellation token: setting it interrupts the pause at once and
    cancels a step that is still in flight.
    """

    sleep_min: float = 2.0  # lower bound of the pause between steps in seconds
    sleep_max: float = 6.0  # upper bound of the pause between steps in seconds
    max_steps: Optional[int] = None
    running: bool = False
    name: str | None = None
    step: int = 0
    rng: random.Random = Field(default_factory=random.Random)
    stop_event: asyncio.Event = Field(default_factory=asyncio.Event)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    _task: Optional[asyncio.Task] = PrivateAttr(default=None)

    @model_validator(mode="after")
    def validate_name(self):
        if self.name is None:
            self.name = self.__class__.__name__
        if self.sleep_min > self.sleep_max:
            raise ValueError("sleep_min must not exceed sleep_max")
        return self

    @abstractmethod
    async def run_step(self):
        """Implement this method with the logic that needs to run periodically."""
        raise NotImplementedError("run_step method must be implemented")

    def next_interval(self) -> float:
        """Uniformly jittered pause in [sleep_min, sleep_max]."""
        return self.rng.uniform(self.sleep_min, self.sleep_max)

    def on_sleep(self, seconds: float):
        """Hook called before each pause."""

    async def wait_for_next_execution(self, seconds: float) -> bool:
        """Sleep for `seconds` unless stopped first. Returns True if stopped."""
        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def run_step_until_stopped(self) -> bool:
        """Run one step, cancelling it if a stop arrives first. Returns True if stopped."""
        step_task = asyncio.create_task(self.run_step())
        stop_task = asyncio.create_task(self.stop_event.wait())
        try:
            await asyncio.wait({step_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop_task.cancel()

        if not step_task.done():
            step_task.cancel()
            try:
                await step_task
            except asyncio.CancelledError:
                logger.debug(f"{self.name}: in-flight step {self.step} cancelled")
            return True

        try:
            step_task.result()
        except asyncio.CancelledError:
            raise
        except Exception as ex:
            logger.exception(f"Error in loop iteration: {ex}")
        return self.stop_event.is_set()

    def budget_exhausted(self) -> bool:
        return self.max_steps is not None and self.step >= self.max_steps

    async def run_loop(self):
        """Run the loop until stopped or until `max_steps` steps have completed."""
        try:
            while self.running and not self.stop_event.is_set():
                if await self.run_step_until_stopped():
                    break
                self.step += 1
                if self.budget_exhausted():
                    break
                interval = self.next_interval()
                self.on_sleep(interval)
                if await self.wait_for_next_execution(interval):
                    break
        except asyncio.CancelledError:
            logger.info("Loop was stopped.")
        except Exception as e:
            logger.error(f"Fatal error in loop: {e}")
        finally:
            self.running = False
        logger.debug("Exiting run_loop")

    async def start(self):
        """Start the loop."""
        if self.running:
            logger.warning("Loop is already running.")
            return
        self.running = True
        self._task = asyncio.create_task(self.run_loop())

    async def wait(self):
        """Wait for a started loop to finish."""
        if self._task:
            await self._task

    async def stop(self):
        """Stop the loop."""
        self.stop_event.set()
        if self._task:
            await self._task
