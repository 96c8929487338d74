"""
StageRunner — continuation of multi-stage jobs through re-enqueue.

A multi-stage job type registers one coroutine per stage. Each stage function
receives the current job and returns a transition:

    Advance(stage, context)  continue with another stage (context optional)
    DONE                     the chain is finished

step() turns the transition into the next Job value (same variant, new stage
and context) or None. It never writes anything: persisting the next job is
the processor's single store write, so a stage's handler is the sole author
of the following stage and chain order is preserved.

The unit of resumability is the whole stage. A stage that fails part-way is
not resumed; the job is dead-lettered by the processor.
"""
from __future__ import annotations

import dataclasses
import logging
from collections.abc import Awaitable, Callable, Mapping
from enum import Enum
from typing import Any, Generic, Protocol, TypeVar

from pydantic import BaseModel

from kvjobs.domain.errors import KVJobsError

logger = logging.getLogger(__name__)


class StagedJob(Protocol):
    stage: Any
    context: Any

    def model_copy(self, *, update: dict[str, Any] | None = None, deep: bool = False) -> Any: ...


J = TypeVar("J", bound=StagedJob)


@dataclasses.dataclass(frozen=True)
class Advance:
    stage: Enum
    context: BaseModel | None = None


@dataclasses.dataclass(frozen=True)
class Done:
    pass


DONE = Done()

Transition = Advance | Done
StageFn = Callable[[J], Awaitable[Transition]]


@dataclasses.dataclass
class StageRunner(Generic[J]):
    """
    Parameters
    ----------
    name   : job type, used in logs and errors
    stages : stage value -> stage coroutine
    """

    name: str
    stages: Mapping[Any, StageFn[J]]

    async def step(self, job: J) -> J | None:
        """Run the job's current stage. Returns the next job, or None when done."""
        fn = self.stages.get(job.stage)
        if fn is None:
            raise KVJobsError(f"{self.name}: no handler for stage {job.stage!r}")

        logger.info("%s: running stage %s", self.name, _label(job.stage))
        transition = await fn(job)

        match transition:
            case Advance(stage=stage, context=None):
                logger.info("%s: %s -> %s", self.name, _label(job.stage), _label(stage))
                return job.model_copy(update={"stage": stage})
            case Advance(stage=stage, context=context):
                logger.info("%s: %s -> %s", self.name, _label(job.stage), _label(stage))
                return job.model_copy(update={"stage": stage, "context": context})
            case Done():
                logger.info("%s: finished at stage %s", self.name, _label(job.stage))
                return None
            case _:
                raise KVJobsError(f"{self.name}: stage returned {transition!r}")


def _label(stage: Any) -> str:
    return stage.value if isinstance(stage, Enum) else str(stage)
