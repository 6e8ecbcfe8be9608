"""チャンピオン交代判定"""

from __future__ import annotations

from dataclasses import dataclass

from ..core.models import Candidate

DEFAULT_REPLACEMENT_THRESHOLD = 0.005


def should_replace(
    champion_score: float,
    challenger_score: float,
    threshold: float = DEFAULT_REPLACEMENT_THRESHOLD,
) -> bool:
    """チャレンジャーがしきい値を超えて上回った場合のみ交代"""
    return challenger_score > champion_score + threshold


@dataclass(frozen=True)
class LaneDecision:
    """1レーンの交代判定結果

    Attributes:
        replaced: チャレンジャーが新チャンピオンになるか
        champion_score: チャンピオンの今回スコア
        challenger_score: チャレンジャーのスコア
        score_change: 新チャンピオン（交代時はチャレンジャー）に記録するスコア変化
    """

    replaced: bool
    champion_score: float
    challenger_score: float
    score_change: float

    @property
    def delta(self) -> float:
        """チャレンジャー − チャンピオン"""
        return self.challenger_score - self.champion_score


class ReplacementPolicy:
    """しきい値付きのチャンピオン交代ポリシー"""

    def __init__(self, threshold: float = DEFAULT_REPLACEMENT_THRESHOLD):
        self.threshold = threshold

    def decide(
        self,
        champion: Candidate,
        champion_score: float,
        challenger_score: float,
    ) -> LaneDecision:
        """交代するかを判定する

        交代時はチャレンジャーに (challenger − champion) を、
        維持時はチャンピオンに前回スコアからの変化を記録する。
        """
        if should_replace(champion_score, challenger_score, self.threshold):
            return LaneDecision(
                replaced=True,
                champion_score=champion_score,
                challenger_score=challenger_score,
                score_change=challenger_score - champion_score,
            )
        return LaneDecision(
            replaced=False,
            champion_score=champion_score,
            challenger_score=challenger_score,
            score_change=champion_score - champion.overall_score,
        )
