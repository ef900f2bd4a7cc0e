"""
Daily usage accounting.

Each tracked message bumps two buckets for today: the all-agents aggregate
(``__total__``) and, when known, the responding agent's own bucket.
"""
from datetime import date, datetime, timezone
from typing import Callable, Optional

from aics.core.logging import get_logger
from aics.services.ai.schema import TOTAL_USAGE_KEY, AgentId, UsageIncrement
from aics.services.ai.tokens import estimate_cost
from aics.services.repository import Repository

logger = get_logger(__name__)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


class UsageTracker:
    def __init__(self, repository: Repository, today: Callable[[], date] = utc_today):
        self._repository = repository
        self._today = today

    async def track(
        self,
        agent_id: Optional[AgentId],
        token_input: int,
        token_output: int,
        is_new_conversation: bool = False,
    ) -> UsageIncrement:
        increment = UsageIncrement(
            calls=1,
            token_input=token_input,
            token_output=token_output,
            messages=1,
            conversations=1 if is_new_conversation else 0,
            cost_usd=estimate_cost(token_input, token_output),
        )
        day = self._today()

        await self._repository.upsert_usage_bucket(day, TOTAL_USAGE_KEY, increment)
        if agent_id is not None:
            await self._repository.upsert_usage_bucket(day, agent_id.value, increment)

        logger.debug(
            "usage_tracked",
            agent_id=agent_id.value if agent_id else None,
            token_input=token_input,
            token_output=token_output,
            cost_usd=increment.cost_usd,
        )
        return increment

    async def track_new_conversation(self) -> UsageIncrement:
        return await self.track(None, 0, 0, is_new_conversation=True)
