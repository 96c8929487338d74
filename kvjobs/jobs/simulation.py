"""simulation — run a cleanup or migration what-if and send the result."""
from __future__ import annotations

import dataclasses
import logging

from kvjobs.domain.errors import KVJobsError
from kvjobs.domain.models import SimulationJob
from kvjobs.ports.services import ChatNotifier, Simulator

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class SimulationHandler:
    simulator: Simulator
    notifier: ChatNotifier

    async def __call__(self, job: SimulationJob) -> None:
        ctx = job.context
        match ctx.sub_command:
            case "cleanup":
                result = await self.simulator.cleanup(ctx.parameter)
            case "migration":
                result = await self.simulator.migration(ctx.parameter)
            case other:
                raise KVJobsError(f"Unknown simulation {other!r}")

        chat_id = job.origin.chat_id if job.origin else None
        await self.notifier.send_message(result, chat_id)
        logger.info("Simulation %s(%r) delivered", ctx.sub_command, ctx.parameter)
