"""トーナメント データモデル

Tournament / Candidate / Review / RoundRecord と、
ライブ配信用の RoundUpdate を定義する。

スコアは全て [0, 1] に丸められる（NaNは0）。
Review と RoundRecord はイミュータブル。
"""

from __future__ import annotations

import hashlib
import math
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Literal

import jcs
from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from ulid import ULID

# レーン数の上限（ラベル A..Z）
MAX_LANES = 26


def generate_id() -> str:
    """IDを生成 (ULID形式)"""
    return str(ULID())


def clamp_score(value: Any) -> float:
    """スコアを [0, 1] に丸める

    数値に変換できない値とNaNは0として扱う。
    """
    try:
        v = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(v):
        return 0.0
    return max(0.0, min(1.0, v))


def lane_label(lane_id: int) -> str:
    """レーンIDをラベル文字に変換 (0 -> "A")"""
    if not 0 <= lane_id < MAX_LANES:
        raise ValueError(f"lane_id must be in [0, {MAX_LANES}), got {lane_id}")
    return chr(ord("A") + lane_id)


def candidate_label(lane_id: int, version: int) -> str:
    """候補ラベルを生成 (A_v1, B_v2, ...)"""
    return f"{lane_label(lane_id)}_v{version}"


def _utcnow() -> datetime:
    return datetime.now(UTC)


# =============================================================================
# 列挙型
# =============================================================================


class TournamentStatus(StrEnum):
    """トーナメントの状態"""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """終端状態か"""
        return self in (
            TournamentStatus.COMPLETED,
            TournamentStatus.FAILED,
            TournamentStatus.CANCELLED,
        )


# =============================================================================
# Tournament
# =============================================================================


class TournamentConfig(BaseModel):
    """トーナメント開始パラメータ

    コアが解釈するのは lanes と max_rounds のみ。
    それ以外はGeneratorに渡される不透明な値。
    """

    drug_name: str = Field(..., min_length=1, max_length=200, description="薬剤名")
    indication: str = Field(..., min_length=1, max_length=500, description="適応症")
    strategic_goals: list[str] = Field(..., min_length=1, description="戦略目標ID")
    geography: list[str] = Field(..., min_length=1, description="対象地域 (ISO 3166-1 alpha-2)")
    study_phase_pref: Literal["I", "II", "III", "IV", "any"] = Field(default="any")
    max_rounds: int = Field(default=3, ge=1, le=20, description="最大ラウンド数")
    lanes: int = Field(default=5, ge=1, le=MAX_LANES, description="レーン数")
    budget_ceiling_eur: int | None = Field(default=None, gt=0)
    timeline_ceiling_months: int | None = Field(default=None, gt=0)
    additional_context: str | None = Field(default=None, max_length=5000)

    @field_validator("geography")
    @classmethod
    def normalize_geography(cls, v: list[str]) -> list[str]:
        """地域コードを大文字2文字に正規化"""
        codes = [code.strip().upper() for code in v]
        for code in codes:
            if len(code) != 2 or not code.isalpha():
                raise ValueError(f"地域コードは2文字である必要があります: {code!r}")
        return codes


class Tournament(BaseModel):
    """トーナメント

    Coordinator（とキャンセル操作）のみが更新する。
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=generate_id)
    config: TournamentConfig
    current_round: int = Field(default=0, ge=0)
    status: TournamentStatus = Field(default=TournamentStatus.PENDING)
    error: str | None = Field(default=None, description="失敗理由")
    created_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = None


# =============================================================================
# Candidate / Review
# =============================================================================


class Candidate(BaseModel):
    """候補（アイデア）

    Generatorが生成し、スコア関連フィールドのみがエンジンによって更新される。
    round は生成時に固定され、以降変更されない。
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=generate_id)
    tournament_id: str
    lane_id: int = Field(..., ge=0, lt=MAX_LANES)
    label: str = Field(default="", description="表示ラベル (A_v1 など)")
    round: int = Field(default=0, ge=0, description="生成ラウンド")
    is_champion: bool = False
    parent_id: str | None = None

    # スコアリングが参照する構造フィールド
    title: str = ""
    drug_name: str = ""
    indication: str = ""
    strategic_goals: list[str] = Field(default_factory=list)
    geography: list[str] = Field(default_factory=list)
    study_phase: str = ""
    target_subpopulation: str | None = None
    comparator_drugs: list[str] = Field(default_factory=list)
    knowledge_gap: str | None = None
    innovation_justification: str | None = None

    # 改善トラッキング（チャレンジャー用）
    improvement_rationale: str | None = None
    key_improvements: list[str] = Field(default_factory=list)

    # 不透明なペイロード (PICO, SWOT, フィージビリティ等)
    content: dict[str, Any] = Field(default_factory=dict)

    overall_score: float = 0.0
    score_change: float | None = None
    success_probability: float | None = Field(default=None, ge=0.0, le=100.0)
    success_factors: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("overall_score", mode="before")
    @classmethod
    def clamp_overall_score(cls, v: Any) -> float:
        return clamp_score(v)


class Review(BaseModel):
    """レビュー

    (候補, レビュアー) ごとに1件生成され、以降は変更されない。
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_id)
    candidate_id: str
    reviewer_id: str
    score: float
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    metrics: dict[str, Any] = Field(default_factory=dict)
    degraded: bool = Field(default=False, description="失敗により代替されたレビューか")
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("score", mode="before")
    @classmethod
    def clamp_review_score(cls, v: Any) -> float:
        return clamp_score(v)


# =============================================================================
# RoundRecord / RoundUpdate
# =============================================================================


class ScoredRef(BaseModel):
    """候補IDとスコアの組"""

    model_config = ConfigDict(frozen=True)

    id: str
    score: float

    @field_validator("score", mode="before")
    @classmethod
    def clamp_ref_score(cls, v: Any) -> float:
        return clamp_score(v)


class LaneUpdate(BaseModel):
    """1レーン分のラウンド結果

    champion はラウンド開始時点のチャンピオン。
    replaced=True の場合は challenger が新チャンピオンになった。
    """

    model_config = ConfigDict(frozen=True)

    lane_id: int = Field(..., ge=0)
    champion: ScoredRef
    challenger: ScoredRef | None = None
    delta: float = 0.0
    replaced: bool = False

    def to_wire(self) -> dict[str, Any]:
        """配信用の辞書に変換"""
        d: dict[str, Any] = {
            "laneId": self.lane_id,
            "champion": {"id": self.champion.id, "score": self.champion.score},
            "delta": self.delta,
            "replaced": self.replaced,
        }
        if self.challenger is not None:
            d["challenger"] = {"id": self.challenger.id, "score": self.challenger.score}
        return d


class RoundRecord(BaseModel):
    """ラウンド記録

    完了したラウンドごとに1件だけ生成される。永続化後は不変。
    """

    model_config = ConfigDict(frozen=True)

    tournament_id: str
    round_number: int = Field(..., ge=0)
    lane_updates: list[LaneUpdate] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime = Field(default_factory=_utcnow)

    @property
    def record_id(self) -> str:
        """冪等書き込み用のID"""
        return f"{self.tournament_id}:{self.round_number}"

    @computed_field
    @property
    def digest(self) -> str:
        """内容のハッシュ (JCS正規化 + SHA-256、タイムスタンプは除外)"""
        data = self.model_dump(
            mode="json",
            include={"tournament_id", "round_number", "lane_updates"},
        )
        return hashlib.sha256(jcs.canonicalize(data)).hexdigest()

    @property
    def replaced_count(self) -> int:
        """チャンピオンが入れ替わったレーン数"""
        return sum(1 for u in self.lane_updates if u.replaced)


class RoundUpdate(BaseModel):
    """ライブ配信メッセージ"""

    model_config = ConfigDict(frozen=True)

    round: int = Field(..., ge=0)
    lanes: list[LaneUpdate] = Field(default_factory=list)
    timestamp: str = Field(default_factory=lambda: _utcnow().isoformat())

    @classmethod
    def from_record(cls, record: RoundRecord) -> RoundUpdate:
        """RoundRecordから配信メッセージを生成"""
        return cls(
            round=record.round_number,
            lanes=list(record.lane_updates),
            timestamp=record.completed_at.isoformat(),
        )

    def to_dict(self) -> dict[str, Any]:
        """SSE配信用の辞書に変換"""
        return {
            "round": self.round,
            "lanes": [lane.to_wire() for lane in self.lanes],
            "timestamp": self.timestamp,
        }
