"""Durable step execution for pipeline runs.

A step runs at most once per run: its output is serialized to JSON and
recorded before the caller moves on, and a later invocation for the same
run returns the recorded output instead of running the step again.
"""

import logging
from typing import Any, Callable, Optional, Protocol, TypeVar

from pydantic import TypeAdapter

from .db.models import StepCheckpoint

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CheckpointStore(Protocol):
    """Storage the step runner needs. PipelineRunStorage implements it."""

    def get_step_checkpoint(self, run_id: int, step_name: str) -> Optional[StepCheckpoint]:
        ...

    def save_step_checkpoint(self, run_id: int, step_name: str, output: Any) -> None:
        ...


class DurableStepRunner:
    """Runs named steps of one pipeline run with checkpoint/replay semantics."""

    def __init__(self, run_id: int, store: CheckpointStore):
        self.run_id = run_id
        self.store = store
        self.replayed_steps: list[str] = []
        self.executed_steps: list[str] = []

    def run_step(self, name: str, adapter: TypeAdapter, fn: Callable[[], T]) -> T:
        """
        Return the checkpointed output of step `name`, running `fn` if needed.

        Args:
            name: Step name, unique within a run
            adapter: TypeAdapter describing the step's output type; used to
                dump the output to JSON and to rebuild it on replay
            fn: Zero-argument callable producing the step output

        Raises:
            Whatever fn raises, or a storage error if the checkpoint cannot be
            read or written. The step is not considered complete in that case.
        """
        checkpoint = self.store.get_step_checkpoint(self.run_id, name)
        if checkpoint is not None:
            logger.info(f"Run #{self.run_id}: step '{name}' already checkpointed, reusing output")
            self.replayed_steps.append(name)
            return adapter.validate_python(checkpoint.output)

        logger.info(f"Run #{self.run_id}: running step '{name}'")
        result = fn()
        self.store.save_step_checkpoint(
            self.run_id, name, adapter.dump_python(result, mode="json")
        )
        self.executed_steps.append(name)
        return result
