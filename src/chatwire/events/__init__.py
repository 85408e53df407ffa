"""Event bus for chatwire."""

from chatwire.events.bus import EventBus

__all__ = ["EventBus"]
