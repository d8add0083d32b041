from .agent import Agent, Event, TurnHandle
from .session import Result, Session

__all__ = ["Agent", "Event", "Result", "Session", "TurnHandle"]
