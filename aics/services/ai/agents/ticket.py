"""
Ticket agent (team-7).

Decides whether a service ticket is needed. The model answers with
{"message", "needsTicket", "ticket"}; the customer-facing message becomes the
content and a create_ticket action is emitted when requested. If the response
cannot be decoded the raw text is used and no ticket is requested.
"""
import time

from aics.services.ai.agents.base import Agent
from aics.services.ai.schema import (
    AgentAction,
    AgentId,
    AgentInput,
    AgentOutput,
    TicketDecisionPayload,
    decode_or_none,
)


class TicketAgent(Agent):
    agent_id = AgentId.TICKET
    temperature = 0.1

    async def run(self, agent_input: AgentInput) -> AgentOutput:
        started = time.perf_counter()
        sentiment = agent_input.sentiment
        user_message = (
            f"Customer request:\n\n{agent_input.message}\n\n"
            f"Sentiment: {sentiment.sentiment if sentiment else 'unknown'}\n"
            f"Urgency: {sentiment.urgency if sentiment else 'medium'}"
        )
        response = await self._complete(agent_input, user_message)

        decision = decode_or_none(response.content, TicketDecisionPayload, self.agent_id.value)
        if decision is None:
            return self._output(response, started, confidence=0.85)

        actions = []
        if decision.needs_ticket and decision.ticket is not None:
            draft = decision.ticket
            actions.append(
                AgentAction(
                    type="create_ticket",
                    payload={
                        "title": draft.title,
                        "description": draft.description,
                        "category": draft.category or "inquiry",
                        "priority": draft.priority or (sentiment.priority if sentiment else "medium"),
                        "customer_id": agent_input.customer_id,
                        "product_name": draft.product_name,
                    },
                )
            )

        return self._output(
            response,
            started,
            confidence=0.85,
            content=decision.message or response.content,
            actions=actions,
        )
