"""IdeaForge Tournament API

FastAPIベースのREST API。
トーナメントの開始・参照・キャンセルとラウンド更新のライブ配信を提供。
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..core import __version__, get_settings
from .dependencies import AppState
from .routes import stream_router, system_router, tournaments_router

logger = logging.getLogger(__name__)

# --- ライフサイクル ---


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """アプリケーションライフサイクル"""
    # 起動時
    state = AppState.get_instance()
    coordinator = state.coordinator

    # 中断されたトーナメントを再開
    for tournament in await state.store.list_tournaments():
        if not tournament.status.is_terminal:
            logger.info("トーナメントを再開: %s", tournament.id)
            coordinator.resume_tournament(tournament.id)

    yield

    # シャットダウン時
    await coordinator.shutdown()
    AppState.reset()


# --- FastAPIアプリケーション ---

app = FastAPI(
    title="IdeaForge Tournament API",
    description="候補を多段ラウンドで評価・改善するトーナメントエンジンのAPI",
    version=__version__,
    lifespan=lifespan,
)

# CORS設定（設定ファイルから読み込み）
settings = get_settings()
cors_config = settings.server.cors
if cors_config.enabled:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_config.allow_origins,
        allow_credentials=cors_config.allow_credentials,
        allow_methods=cors_config.allow_methods,
        allow_headers=cors_config.allow_headers,
    )

# ルーターを登録
app.include_router(system_router)
app.include_router(tournaments_router)
app.include_router(stream_router)
