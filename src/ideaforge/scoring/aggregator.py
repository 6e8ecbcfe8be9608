"""スコア集計

レビュー群と重みテーブルから候補の総合スコア [0, 1] を計算する。

1. 候補の戦略目標ごとの軸重みを等重みで平均する
2. 軸スコア = その軸に寄与するレビュアーのスコアの寄与度加重平均
3. 総合 = 軸スコアの軸重み加重平均（寄与者のいない軸は除外）
4. 任意で複雑度ペナルティを掛ける

重みテーブルが無い・不正な場合はレビュースコアの単純平均
（レビューが無ければ0.5）にフォールバックする。
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import ValidationError

from ..core.models import Candidate, Review, clamp_score
from .complexity import complexity_penalty
from .weights import WeightConfig

logger = logging.getLogger(__name__)

# レビューが1件も無い場合のスコア
NO_REVIEW_SCORE = 0.5


def _mean_score(reviews: Sequence[Review]) -> float:
    if not reviews:
        return NO_REVIEW_SCORE
    return clamp_score(sum(r.score for r in reviews) / len(reviews))


def _resolve_config(config: WeightConfig | Mapping[str, Any] | None) -> WeightConfig | None:
    if config is None or isinstance(config, WeightConfig):
        return config
    if isinstance(config, Mapping):
        try:
            return WeightConfig.model_validate(dict(config))
        except ValidationError:
            logger.warning("重みテーブルが不正です。単純平均で集計します")
            return None
    return None


def _weighted_score(candidate: Candidate, reviews: Sequence[Review], config: WeightConfig) -> float | None:
    """重み付き総合スコア。残る軸が無い場合はNone"""
    goals = candidate.strategic_goals or [config.default_goal]

    # 目標の軸重みを等重みで平均
    axis_weights: dict[str, float] = dict.fromkeys(config.axes, 0.0)
    share = 1.0 / len(goals)
    for goal in goals:
        for axis, weight in config.goal_weights(goal).items():
            axis_weights[axis] += weight * share

    numerator = 0.0
    denominator = 0.0
    for axis, weight in axis_weights.items():
        if weight <= 0:
            continue
        axis_total = 0.0
        contribution_total = 0.0
        for review in reviews:
            contribution = config.reviewer_axis_mapping.get(review.reviewer_id, {}).get(axis, 0.0)
            if contribution > 0:
                axis_total += review.score * contribution
                contribution_total += contribution
        if contribution_total <= 0:
            continue
        numerator += (axis_total / contribution_total) * weight
        denominator += weight

    if denominator <= 0:
        return None
    result = numerator / denominator
    if not math.isfinite(result):
        return None
    return result


def compute_overall_score(
    candidate: Candidate,
    reviews: Sequence[Review],
    config: WeightConfig | Mapping[str, Any] | None,
    *,
    complexity: bool | None = None,
) -> float:
    """候補の総合スコアを計算する

    純粋関数で、例外を送出しない。

    Args:
        candidate: 対象候補
        reviews: 候補のレビュー
        config: 重みテーブル（辞書も可）。Noneの場合は単純平均
        complexity: 複雑度ペナルティの適用有無。Noneの場合は重みテーブルの指定に従う

    Returns:
        [0, 1] のスコア
    """
    weight_config = _resolve_config(config)
    if weight_config is None:
        return _mean_score(reviews)

    try:
        score = _weighted_score(candidate, reviews, weight_config)
    except (ArithmeticError, TypeError, ValueError):
        logger.warning("スコア計算に失敗しました。単純平均で集計します", exc_info=True)
        return _mean_score(reviews)
    if score is None:
        return _mean_score(reviews)

    apply_penalty = weight_config.complexity_penalty if complexity is None else complexity
    if apply_penalty:
        score *= 1.0 - complexity_penalty(candidate)
    return clamp_score(score)


class ScoreAggregator:
    """重みテーブルを保持するスコア集計器

    Attributes:
        config: 重みテーブル（Noneなら単純平均）
        complexity: 複雑度ペナルティの上書き指定
    """

    def __init__(self, config: WeightConfig | Mapping[str, Any] | None, complexity: bool | None = None):
        self.config = _resolve_config(config)
        self.complexity = complexity

    def score(self, candidate: Candidate, reviews: Sequence[Review]) -> float:
        """候補の総合スコア"""
        return compute_overall_score(candidate, reviews, self.config, complexity=self.complexity)
