"""API リクエスト/レスポンスモデル"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from ..core.config import IdeaForgeSettings
from ..core.models import MAX_LANES, Tournament, TournamentConfig


class CreateTournamentRequest(BaseModel):
    """トーナメント作成リクエスト

    lanes / max_rounds を省略した場合は設定の既定値を使う。
    """

    drug_name: str = Field(..., min_length=1, max_length=200)
    indication: str = Field(..., min_length=1, max_length=500)
    strategic_goals: list[str] = Field(..., min_length=1)
    geography: list[str] = Field(..., min_length=1)
    study_phase_pref: Literal["I", "II", "III", "IV", "any"] = "any"
    max_rounds: int | None = Field(default=None, ge=1, le=20)
    lanes: int | None = Field(default=None, ge=1, le=MAX_LANES)
    budget_ceiling_eur: int | None = Field(default=None, gt=0)
    timeline_ceiling_months: int | None = Field(default=None, gt=0)
    additional_context: str | None = Field(default=None, max_length=5000)

    def to_config(self, settings: IdeaForgeSettings) -> TournamentConfig:
        """設定の既定値を補ってTournamentConfigに変換"""
        data = self.model_dump()
        if data["lanes"] is None:
            data["lanes"] = settings.tournament.default_lanes
        if data["max_rounds"] is None:
            data["max_rounds"] = settings.tournament.default_max_rounds
        return TournamentConfig.model_validate(data)


class TournamentDetailResponse(BaseModel):
    """トーナメント詳細（ラウンド記録を含む）"""

    tournament: Tournament
    rounds: list[dict[str, Any]] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """ヘルスチェックレスポンス"""

    status: str
    version: str
    running_tournaments: int
