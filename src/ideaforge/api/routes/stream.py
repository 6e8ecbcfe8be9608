"""Stream エンドポイント

トーナメントのラウンド更新をSSEでリアルタイム配信する。
接続時にハンドシェイクを送り、チャネルが閉じたら
最終状態を含む end イベントを送って終了する。
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse

from ...core import get_settings
from ...core.storage import PersistenceGateway
from ...tournament import EventBroadcaster, QueueSink
from ..dependencies import AppStateDep

router = APIRouter(prefix="/tournaments", tags=["Stream"])


def _format_end(status: str) -> str:
    return f"event: end\ndata: {json.dumps({'status': status})}\n\n"


async def stream_round_updates(
    tournament_id: str,
    store: PersistenceGateway,
    broadcaster: EventBroadcaster,
    keepalive_seconds: float = 15.0,
    queue_size: int = 100,
) -> AsyncIterator[str]:
    """ラウンド更新をSSEフレームとして生成する

    購読前の更新は再送しない。切断時（ジェネレーター終了時）に購読を解除する。
    """
    sink = QueueSink(maxsize=queue_size)
    broadcaster.subscribe(tournament_id, sink)
    try:
        handshake = {"connected": True, "tournamentId": tournament_id}
        yield f"data: {json.dumps(handshake)}\n\n"

        tournament = await store.get_tournament(tournament_id)
        if tournament is None or tournament.status.is_terminal:
            status = tournament.status if tournament else "unknown"
            yield _format_end(str(status))
            return

        while True:
            try:
                update = await asyncio.wait_for(sink.queue.get(), timeout=keepalive_seconds)
            except TimeoutError:
                if sink.closed:
                    break
                yield ": keep-alive\n\n"
                continue
            if update is None:
                break
            yield f"data: {json.dumps(update.to_dict(), ensure_ascii=False)}\n\n"

        tournament = await store.get_tournament(tournament_id)
        yield _format_end(str(tournament.status) if tournament else "unknown")
    finally:
        broadcaster.unsubscribe(tournament_id, sink)


@router.get("/{tournament_id}/stream")
async def stream_tournament(tournament_id: str, state: AppStateDep):
    """SSEでラウンド更新をリアルタイム配信

    Server-Sent Events (SSE) ストリーム。
    購読開始以前のラウンドは GET /tournaments/{id} で取得すること。
    """
    if await state.store.get_tournament(tournament_id) is None:
        raise HTTPException(status_code=404, detail=f"Tournament {tournament_id} not found")

    stream_config = get_settings().stream
    return StreamingResponse(
        stream_round_updates(
            tournament_id,
            state.store,
            state.broadcaster,
            keepalive_seconds=stream_config.keepalive_seconds,
            queue_size=stream_config.queue_size,
        ),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
