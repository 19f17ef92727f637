"""Live-session pipeline."""

from .channel import LiveChannel
from .coordinator import SessionCoordinator, SessionNotFoundError, SessionSummary

__all__ = ["LiveChannel", "SessionCoordinator", "SessionNotFoundError", "SessionSummary"]
