"""Event bus package."""

from expense_engine.events.bus import EventBus, configure_logging

__all__ = ["EventBus", "configure_logging"]
