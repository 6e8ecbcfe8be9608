"""System エンドポイント

ヘルスチェックなどシステム系のエンドポイント。
"""

from fastapi import APIRouter

from ...core import __version__
from ..dependencies import AppStateDep
from ..models import HealthResponse

router = APIRouter(tags=["System"])


@router.get("/health", response_model=HealthResponse)
async def health_check(state: AppStateDep):
    """ヘルスチェック"""
    return HealthResponse(
        status="healthy",
        version=__version__,
        running_tournaments=len(state.coordinator.running_tournaments()),
    )
