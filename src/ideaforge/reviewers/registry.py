"""レビュアー定義

レビュアーIDと役割、Reviewer プロトコル、
決定的な組み込み実装 HeuristicReviewer を提供する。
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from ..core.models import Candidate

REVIEWER_DESCRIPTIONS: dict[str, str] = {
    "CLIN": "臨床的価値",
    "STAT": "統計・デザイン",
    "SAF": "安全性",
    "REG": "薬事規制",
    "HEOR": "医療経済・アウトカム",
    "OPS": "オペレーション",
    "PADV": "患者アドボカシー",
    "ETH": "倫理",
    "COMM": "商業性",
    "SUC": "成功確率",
}

REVIEWER_IDS: list[str] = list(REVIEWER_DESCRIPTIONS)

# 成功確率メタデータを出力するレビュアー
SUCCESS_REVIEWER_ID = "SUC"


class ReviewOutput(BaseModel):
    """レビュアーの出力"""

    score: Any = None
    strengths: Any = Field(default_factory=list)
    weaknesses: Any = Field(default_factory=list)
    metrics: dict[str, Any] = Field(default_factory=dict)


@runtime_checkable
class Reviewer(Protocol):
    """候補を1つの観点で評価するレビュアー

    戻り値は ReviewOutput または同じキーを持つ辞書。
    """

    async def review(self, candidate: Candidate, reviewer_id: str) -> ReviewOutput | dict[str, Any]: ...


class HeuristicReviewer:
    """LLMを使わない決定的レビュアー

    基準スコアに候補の構造的な充実度を加点する。
    チャレンジャーが改善点を持つほど高く評価される。
    """

    # 加点の上限
    MAX_BONUS = 0.3

    def __init__(self, base_score: float = 0.6):
        self.base_score = base_score

    def _bonus(self, candidate: Candidate) -> float:
        bonus = 0.03 * len(candidate.key_improvements)
        if candidate.knowledge_gap:
            bonus += 0.01
        if candidate.target_subpopulation:
            bonus += 0.01
        if candidate.comparator_drugs:
            bonus += 0.01
        return min(self.MAX_BONUS, bonus)

    async def review(self, candidate: Candidate, reviewer_id: str) -> ReviewOutput:
        score = min(1.0, self.base_score + self._bonus(candidate))
        role = REVIEWER_DESCRIPTIONS.get(reviewer_id, reviewer_id)

        weaknesses = []
        if not candidate.target_subpopulation:
            weaknesses.append(f"{role}: 対象サブポピュレーションが未定義")
        if not candidate.comparator_drugs:
            weaknesses.append(f"{role}: 比較対照が未設定")
        if not candidate.knowledge_gap:
            weaknesses.append(f"{role}: エビデンスギャップの記述が不足")
        if not weaknesses:
            weaknesses.append(f"{role}: 詳細なレビューは手動で実施すること")

        metrics: dict[str, Any] = {}
        if reviewer_id == SUCCESS_REVIEWER_ID:
            metrics = {
                "overall_score": round(score * 100, 1),
                "success_factors": {
                    "factors": [f"戦略目標との整合: {', '.join(candidate.strategic_goals)}"],
                    "recommendations": ["主要評価項目を1つに絞る"],
                },
            }

        return ReviewOutput(
            score=score,
            strengths=[f"{role}: 基本デザインは戦略目標と整合している"],
            weaknesses=weaknesses,
            metrics=metrics,
        )
