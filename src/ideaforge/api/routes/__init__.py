"""API ルート

FastAPIルーターを機能別に分割。
"""

from .stream import router as stream_router
from .system import router as system_router
from .tournaments import router as tournaments_router

__all__ = [
    "stream_router",
    "system_router",
    "tournaments_router",
]
