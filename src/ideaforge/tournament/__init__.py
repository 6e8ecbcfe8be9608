"""トーナメントエンジン"""

from .broadcaster import EventBroadcaster, QueueSink, RoundSink
from .coordinator import TournamentCoordinator, TournamentHandle
from .factory import create_coordinator, create_store

__all__ = [
    "EventBroadcaster",
    "QueueSink",
    "RoundSink",
    "TournamentCoordinator",
    "TournamentHandle",
    "create_coordinator",
    "create_store",
]
