"""Per-agent ticket counters: handled, active, closed and first-response times."""

import logging
import time
from typing import Callable, Optional

from supportbot.models import ActiveTicket, AgentCounters, AgentSummary
from supportbot.storage import AgentStatsStore


def _now_ms() -> int:
    return int(time.time() * 1000)


class QaStats:
    """Event sink for ticket glue, persisted through an AgentStatsStore.

    A claim only produces a response-time sample when the agent was assigned
    the ticket first and has not claimed it before.
    """

    def __init__(self, store: AgentStatsStore, clock_ms: Callable[[], int] = _now_ms):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.store = store
        self.clock_ms = clock_ms

    def load(self) -> None:
        result = self.store.load()
        self.logger.info(
            f"QA stats ready for {len(self.store.all())} agents"
            f"{' (started empty)' if result.used_defaults else ''}."
        )

    def _counters(self, agent_id: str) -> AgentCounters:
        counters = self.store.get(agent_id)
        if counters is None:
            counters = AgentCounters()
        return counters

    def record_assign(self, agent_id: str, context: Optional[str], ticket_id: str) -> None:
        agent_id, ticket_id = str(agent_id), str(ticket_id)
        counters = self._counters(agent_id)
        counters.handled.add(ticket_id)
        if ticket_id not in counters.active:
            counters.active[ticket_id] = ActiveTicket(
                context=str(context) if context is not None else None,
                assigned_at=self.clock_ms(),
            )
        self.store.put(agent_id, counters)
        self.logger.debug(f"Ticket {ticket_id} assigned to {agent_id}")

    def record_claim(self, agent_id: str, ticket_id: str) -> None:
        agent_id, ticket_id = str(agent_id), str(ticket_id)
        counters = self._counters(agent_id)
        counters.handled.add(ticket_id)
        slot = counters.active.get(ticket_id)
        if slot is not None and slot.first_response_ms is None:
            slot.first_response_ms = max(0, self.clock_ms() - slot.assigned_at)
            counters.response_samples.append(slot.first_response_ms)
            self.logger.debug(
                f"First response on {ticket_id} by {agent_id} after {slot.first_response_ms}ms"
            )
        self.store.put(agent_id, counters)

    def record_close(self, ticket_id: str) -> int:
        """Credit every agent still holding the ticket. Returns how many were credited."""
        ticket_id = str(ticket_id)
        credited = 0
        for agent_id, counters in self.store.all().items():
            if ticket_id in counters.active:
                del counters.active[ticket_id]
                counters.closed_count += 1
                self.store.put(agent_id, counters)
                credited += 1
        self.logger.debug(f"Ticket {ticket_id} closed; credited {credited} agent(s).")
        return credited

    def record_message(self, agent_id: str) -> None:
        agent_id = str(agent_id)
        counters = self._counters(agent_id)
        counters.messages_public += 1
        self.store.put(agent_id, counters)

    def summarize(self, agent_id: str) -> AgentSummary:
        counters = self.store.get(str(agent_id)) or AgentCounters()
        samples = counters.response_samples
        if samples:
            # half-up rounding
            average = int(sum(samples) / len(samples) + 0.5)
            median = sorted(samples)[len(samples) // 2]
        else:
            average = median = 0
        return AgentSummary(
            handled=len(counters.handled),
            closed=counters.closed_count,
            active=[(tid, slot.context) for tid, slot in counters.active.items()],
            avg_response_ms=average,
            median_response_ms=median,
            messages_public=counters.messages_public,
        )
