"""Event delivery for notestream."""

from notestream.events.bus import EventBus

__all__ = ["EventBus"]
