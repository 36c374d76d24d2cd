"""Inter-agent signal bus."""

from steward.signal.bus import SignalBus, SignalSummary, get_signal_bus
from steward.store.models import Signal

__all__ = [
    "Signal",
    "SignalBus",
    "SignalSummary",
    "get_signal_bus",
]
