"""Inter-agent signal bus.

A typed, TTL-bounded mailbox backed by the store. A bus is bound to one
agent: it emits as that agent and reads signals addressed to it or
broadcast (``target_agent=None``). Priority (1 = critical .. 3 = info) is
data for readers to sort and filter on; it does not change delivery.
"""

from __future__ import annotations

import logging
import weakref
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

from steward.store.base import Store
from steward.store.models import Signal, SignalQuery, utc_now

logger = logging.getLogger(__name__)

DEFAULT_TTL_HOURS = 24.0
CRITICAL_PRIORITY = 2  # priorities at or below this count as critical


@dataclass
class SignalSummary:
    total: int = 0
    critical: list[Signal] = field(default_factory=list)
    by_source: dict[str, int] = field(default_factory=dict)
    by_type: dict[str, int] = field(default_factory=dict)


class SignalBus:
    """Mailbox for one agent. Reads return ``[]``/``None`` on store failure."""

    def __init__(
        self,
        agent_name: str,
        store: Store,
        clock: Callable[[], datetime] = utc_now,
        default_ttl_hours: float = DEFAULT_TTL_HOURS,
    ) -> None:
        self.agent_name = agent_name
        self._store = store
        self._clock = clock
        self.default_ttl_hours = default_ttl_hours

    async def emit(
        self,
        signal_type: str,
        message: str,
        payload: dict[str, Any] | None = None,
        *,
        target: str | None = None,
        priority: int = 3,
        ttl_hours: float | None = None,
    ) -> str | None:
        """Emit a signal; returns its id, or None if it could not be stored."""
        try:
            now = self._clock()
            ttl = ttl_hours if ttl_hours and ttl_hours > 0 else self.default_ttl_hours
            signal = Signal(
                signal_type=signal_type,
                source_agent=self.agent_name,
                target_agent=target or None,
                message=message,
                payload=dict(payload or {}),
                priority=min(max(int(priority), 1), 3),
                created_at=now,
                expires_at=now + timedelta(hours=ttl),
            )
            signal_id = await self._store.insert_signal(signal)
        except Exception as e:
            logger.error("Signal emit failed (%s from %s): %s", signal_type, self.agent_name, e)
            return None

        logger.info(
            "Signal %s -> %s %s: %s",
            self.agent_name,
            target or "*",
            signal_type,
            message,
        )
        return signal_id

    async def peek(
        self,
        *,
        source: str | None = None,
        types: list[str] | None = None,
        hours_back: float = 24,
        limit: int = 10,
        min_priority: int | None = None,
    ) -> list[Signal]:
        """Read active signals created within ``hours_back`` without consuming them."""
        now = self._clock()
        query = SignalQuery(
            now=now,
            recipient=self.agent_name,
            types=types,
            source=source,
            since=now - timedelta(hours=hours_back),
            min_priority=min_priority,
            limit=limit,
        )
        return await self._query(query)

    async def consume(
        self,
        *,
        types: list[str] | None = None,
        min_priority: int | None = None,
        limit: int = 20,
        mark_consumed: bool = False,
    ) -> list[Signal]:
        """Read active signals; with ``mark_consumed`` they will not be returned again.

        Marking is a shared mutation: a broadcast signal consumed here is
        consumed for every agent.
        """
        query = SignalQuery(
            now=self._clock(),
            recipient=self.agent_name,
            types=types,
            min_priority=min_priority,
            limit=limit,
        )
        signals = await self._query(query)

        if mark_consumed and signals:
            ids = [s.id for s in signals if s.id]
            try:
                await self._store.mark_signals_consumed(ids, self.agent_name, self._clock())
            except Exception as e:
                logger.error("Failed to mark %d signals consumed: %s", len(ids), e)
            else:
                for s in signals:
                    s.consumed = True
                    s.consumed_by = self.agent_name

        logger.debug("%s consumed %d signals", self.agent_name, len(signals))
        return signals

    async def dismiss(self, signal_id: str) -> bool:
        """Consume one signal by id. Returns False if nothing was marked."""
        try:
            count = await self._store.mark_signals_consumed(
                [signal_id], self.agent_name, self._clock()
            )
        except Exception as e:
            logger.error("Failed to dismiss signal %s: %s", signal_id, e)
            return False
        return count > 0

    async def has_recent(self, signal_type: str, hours_back: float = 24) -> bool:
        signals = await self.peek(types=[signal_type], hours_back=hours_back, limit=1)
        return len(signals) > 0

    async def get_latest(self, signal_type: str) -> Signal | None:
        """Newest active signal of a type, regardless of age."""
        query = SignalQuery(
            now=self._clock(),
            recipient=self.agent_name,
            types=[signal_type],
            order="newest",
            limit=1,
        )
        signals = await self._query(query)
        return signals[0] if signals else None

    async def get_active_summary(self) -> SignalSummary:
        """Counts of the last day's active signals, plus the critical ones."""
        signals = await self.peek(hours_back=24, limit=50)
        return SignalSummary(
            total=len(signals),
            critical=[s for s in signals if s.priority <= CRITICAL_PRIORITY],
            by_source=dict(Counter(s.source_agent for s in signals)),
            by_type=dict(Counter(s.signal_type for s in signals)),
        )

    async def _query(self, query: SignalQuery) -> list[Signal]:
        try:
            return await self._store.query_signals(query)
        except Exception as e:
            logger.error("Signal read failed for %s: %s", self.agent_name, e)
            return []


_buses: weakref.WeakKeyDictionary[Any, dict[str, SignalBus]] = weakref.WeakKeyDictionary()


def get_signal_bus(
    agent_name: str, store: Store, default_ttl_hours: float | None = None
) -> SignalBus:
    """One bus per (agent, store).

    A given ``default_ttl_hours`` replaces the cached bus's default; None
    keeps it.
    """
    per_store = _buses.setdefault(store, {})
    bus = per_store.get(agent_name)
    if bus is None:
        bus = per_store[agent_name] = SignalBus(agent_name, store)
    if default_ttl_hours is not None:
        bus.default_ttl_hours = default_ttl_hours
    return bus
