"""ラウンド更新のブロードキャスター

トーナメントごとに購読シンクを保持し、RoundUpdate を配信する。
履歴は持たない（購読前の更新は再送しない）。
配信に失敗したシンクはログを出して登録解除・クローズし、他のシンクには配信を続ける。
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Protocol, runtime_checkable

from ..core.errors import BroadcastSinkError
from ..core.models import RoundUpdate

logger = logging.getLogger(__name__)


@runtime_checkable
class RoundSink(Protocol):
    """ラウンド更新の受け手"""

    def send(self, update: RoundUpdate) -> None: ...

    def close(self) -> None: ...


class QueueSink:
    """上限付き asyncio.Queue に積むシンク（SSE用）

    キューが溢れた場合は BroadcastSinkError を送出し、
    遅い購読者はブロードキャスターから外される。
    """

    def __init__(self, maxsize: int = 100):
        self.queue: asyncio.Queue[RoundUpdate | None] = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    def send(self, update: RoundUpdate) -> None:
        if self.closed:
            raise BroadcastSinkError("sink is closed")
        try:
            self.queue.put_nowait(update)
        except asyncio.QueueFull as exc:
            raise BroadcastSinkError(f"sink queue is full ({self.queue.maxsize})") from exc

    def close(self) -> None:
        """終端を通知（None を積む）"""
        if self.closed:
            return
        self.closed = True
        try:
            self.queue.put_nowait(None)
        except asyncio.QueueFull:
            # 読み手は closed フラグで終端を検知する
            pass


class EventBroadcaster:
    """トーナメント単位のブロードキャスター（シングルトン）

    レジストリは threading.Lock で保護し、
    配信はロック外でシンクのスナップショットに対して行う。
    """

    _instance: EventBroadcaster | None = None

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._channels: dict[str, list[RoundSink]] = {}

    @classmethod
    def get_instance(cls) -> EventBroadcaster:
        """シングルトンインスタンスを取得"""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """シングルトンをリセット（テスト用）"""
        cls._instance = None

    def open(self, tournament_id: str) -> None:
        """配信チャネルを開く（既に開いていれば何もしない）"""
        with self._lock:
            self._channels.setdefault(tournament_id, [])

    def close(self, tournament_id: str) -> None:
        """配信チャネルを閉じ、全シンクに終端を通知して登録を削除する"""
        with self._lock:
            sinks = self._channels.pop(tournament_id, [])
        for sink in sinks:
            self._close_sink(tournament_id, sink)

    @staticmethod
    def _close_sink(tournament_id: str, sink: RoundSink) -> None:
        try:
            sink.close()
        except Exception:
            logger.warning("シンクのクローズに失敗: tournament=%s", tournament_id, exc_info=True)

    def has_channel(self, tournament_id: str) -> bool:
        with self._lock:
            return tournament_id in self._channels

    def subscribe(self, tournament_id: str, sink: RoundSink) -> None:
        """シンクを登録（チャネルが無ければ作成する）"""
        with self._lock:
            self._channels.setdefault(tournament_id, []).append(sink)

    def unsubscribe(self, tournament_id: str, sink: RoundSink) -> None:
        """シンクを登録解除（未登録なら何もしない）

        最後のシンクが外れたチャネルはレジストリから削除する。
        """
        with self._lock:
            sinks = self._channels.get(tournament_id)
            if sinks is None:
                return
            remaining = [s for s in sinks if s is not sink]
            if remaining:
                self._channels[tournament_id] = remaining
            elif len(remaining) != len(sinks):
                del self._channels[tournament_id]

    def subscriber_count(self, tournament_id: str) -> int:
        with self._lock:
            return len(self._channels.get(tournament_id, []))

    def publish(self, tournament_id: str, update: RoundUpdate) -> int:
        """購読中の全シンクに配信する

        Returns:
            配信に成功したシンク数
        """
        with self._lock:
            sinks = list(self._channels.get(tournament_id, []))

        delivered = 0
        for sink in sinks:
            try:
                sink.send(update)
            except Exception as exc:
                logger.warning(
                    "シンクへの配信に失敗したため登録解除: tournament=%s (%s)",
                    tournament_id,
                    exc,
                )
                self.unsubscribe(tournament_id, sink)
                # 外したシンクの読み手にも終端を知らせる
                self._close_sink(tournament_id, sink)
                continue
            delivered += 1
        return delivered
