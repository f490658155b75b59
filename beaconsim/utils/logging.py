import sys
from datetime import datetime
from typing import Any, Optional

import wandb
from loguru import logger
from pydantic import BaseModel
from wandb.wandb_run import Run

import beaconsim
from beaconsim.settings import Settings
from beaconsim.utils.utils import provision_log_file

EVENT_FORMAT = "{time:YYYY-MM-DDTHH:mm:ssZ} {message}"

event_logger = logger.bind(event=True)


def is_event(record: dict) -> bool:
    return record["extra"].get("event", False)


def setup_logging(settings: Settings) -> int:
    """
    Routes operational logs to stderr and action events to the append-only log file.

    Returns:
        int: The loguru handler id of the event sink.
    """
    log_path = provision_log_file(settings.LOG_FILE)
    logger.remove()
    logger.add(sys.stderr, level=settings.LOG_LEVEL)
    return logger.add(str(log_path), format=EVENT_FORMAT, filter=is_event, level="INFO", mode="a")


def init_wandb(settings: Settings) -> Run:
    """Starts a new wandb run for iteration metrics."""
    tags = [
        f"Version: {beaconsim.__version__}",
        f"Targets: {len(settings.TARGETS)}",
    ]

    wandb_config = {
        "QUERIES_PER_ITER": settings.QUERIES_PER_ITER,
        "BEACON_PROB": settings.BEACON_PROB,
        "BURST_PROB": settings.BURST_PROB,
        "SLEEP_MIN": settings.SLEEP_MIN,
        "SLEEP_MAX": settings.SLEEP_MAX,
        "wandb_start_time": datetime.now().strftime('%Y-%m-%d %H:%M:%S'),
    }

    logger.info(f"Logging to wandb project: {settings.WANDB_PROJECT_NAME}")
    run = wandb.init(
        project=settings.WANDB_PROJECT_NAME,
        entity=settings.WANDB_ENTITY,
        mode="offline" if settings.WANDB_OFFLINE else "online",
        dir=beaconsim.SAVE_PATH,
        tags=tags,
        notes=settings.WANDB_NOTES,
        config=wandb_config,
    )
    logger.success(f"Started a new wandb run <blue> {run.name} </blue>")
    return run


class BaseEvent(BaseModel):
    pass


class MessageEvent(BaseEvent):
    message: str

    def __str__(self):
        return self.message


class IterationEvent(BaseEvent):
    step: int
    counts: dict[str, int]

    def __str__(self):
        counts = " ".join(f"{key}={value}" for key, value in self.counts.items())
        return f"Iteration {self.step} summary: {counts}"


class EventLogger:
    """Append-only event sink shared by the scheduler and the probes."""

    def __init__(self, wandb_run: Optional[Run] = None):
        self.wandb_run = wandb_run

    def note(self, message: str) -> None:
        event_logger.info(message)

    def log_event(self, event: BaseEvent) -> None:
        event_logger.info(f"{event}")

        if self.wandb_run is not None and isinstance(event, IterationEvent):
            self.wandb_run.log(unpack_event(event), step=event.step)

    def close(self) -> None:
        if self.wandb_run is not None:
            self.wandb_run.finish()
            self.wandb_run = None


def unpack_event(event: IterationEvent) -> dict[str, Any]:
    """Flattens the per-kind counts next to the scalar fields."""
    event_dict = event.model_dump()
    event_dict.update(event_dict.pop("counts"))
    return {key: value for key, value in event_dict.items() if value is not None}
