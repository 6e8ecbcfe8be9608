"""レビュアープール

登録された全レビュアーで候補を並列評価する。
失敗・タイムアウトしたレビュアーは劣化レビュー（スコア0）に置き換え、
バッチ全体は常にレジストリと同じ件数のレビューを返す。
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from ..core.errors import ReviewFailure
from ..core.models import Candidate, Review
from ..core.storage import PersistenceGateway
from .registry import REVIEWER_IDS, SUCCESS_REVIEWER_ID, Reviewer, ReviewOutput

logger = logging.getLogger(__name__)

# スコアが無い・数値でない場合の値
DEFAULT_REVIEW_SCORE = 0.5


def _as_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]


def normalize_output(candidate_id: str, reviewer_id: str, output: Any) -> Review:
    """レビュアー出力をReviewに正規化する

    Raises:
        ReviewFailure: 出力が辞書でもReviewOutputでもない場合
    """
    if isinstance(output, ReviewOutput):
        data: Mapping[str, Any] = output.model_dump()
    elif isinstance(output, Mapping):
        data = output
    else:
        raise ReviewFailure(f"Unexpected output type from {reviewer_id}: {type(output).__name__}")

    score = data.get("score")
    if isinstance(score, bool) or not isinstance(score, int | float):
        score = DEFAULT_REVIEW_SCORE

    metrics = data.get("metrics")
    return Review(
        candidate_id=candidate_id,
        reviewer_id=reviewer_id,
        score=score,
        strengths=_as_list(data.get("strengths")),
        weaknesses=_as_list(data.get("weaknesses")),
        metrics=dict(metrics) if isinstance(metrics, Mapping) else {},
    )


def degraded_review(candidate_id: str, reviewer_id: str, error: BaseException) -> Review:
    """失敗したレビュアーの代替レビュー"""
    message = str(error) or type(error).__name__
    return Review(
        candidate_id=candidate_id,
        reviewer_id=reviewer_id,
        score=0.0,
        weaknesses=[f"Error processing review: {message}"],
        degraded=True,
    )


class ReviewerPool:
    """全レビュアーによる並列評価

    Attributes:
        reviewer: レビュー実行の実装
        reviewer_ids: 評価に参加するレビュアーID
        timeout: レビュアー単位のタイムアウト秒
    """

    def __init__(
        self,
        reviewer: Reviewer,
        reviewer_ids: Sequence[str] | None = None,
        timeout: float = 120.0,
        store: PersistenceGateway | None = None,
        success_reviewer_id: str | None = SUCCESS_REVIEWER_ID,
    ):
        self.reviewer = reviewer
        self.reviewer_ids = list(reviewer_ids) if reviewer_ids is not None else list(REVIEWER_IDS)
        self.timeout = timeout
        self._store = store
        self._success_reviewer_id = success_reviewer_id
        # トーナメントIDごとの未完了の副作用更新
        self._side_tasks: dict[str, set[asyncio.Task[None]]] = {}

    async def review(self, candidate: Candidate) -> list[Review]:
        """候補を全レビュアーで評価する

        Returns:
            reviewer_ids と同じ順序・件数のレビュー
        """
        reviews = await asyncio.gather(
            *(self._run_one(candidate, rid) for rid in self.reviewer_ids)
        )
        self._schedule_success_update(candidate, reviews)
        return list(reviews)

    async def _run_one(self, candidate: Candidate, reviewer_id: str) -> Review:
        try:
            output = await asyncio.wait_for(
                self.reviewer.review(candidate, reviewer_id), timeout=self.timeout
            )
            review = normalize_output(candidate.id, reviewer_id, output)
            # 保存できない出力（JSON化できない metrics など）もここで劣化扱いにする
            return Review.model_validate_json(review.model_dump_json())
        except TimeoutError:
            error = ReviewFailure(f"reviewer {reviewer_id} timed out after {self.timeout}s")
        except Exception as exc:
            error = exc if isinstance(exc, ReviewFailure) else ReviewFailure(f"{type(exc).__name__}: {exc}")

        logger.warning(
            "レビュー劣化: candidate=%s reviewer=%s (%s)", candidate.id, reviewer_id, error
        )
        return degraded_review(candidate.id, reviewer_id, error)

    # --- 成功確率メタデータ ---

    def _schedule_success_update(self, candidate: Candidate, reviews: Sequence[Review]) -> None:
        if self._store is None or self._success_reviewer_id is None:
            return
        review = next(
            (r for r in reviews if r.reviewer_id == self._success_reviewer_id and not r.degraded),
            None,
        )
        if review is None:
            return
        tournament_id = candidate.tournament_id
        task = asyncio.create_task(self._update_success(candidate.id, review))
        self._side_tasks.setdefault(tournament_id, set()).add(task)
        task.add_done_callback(lambda t: self._forget(tournament_id, t))

    def _forget(self, tournament_id: str, task: asyncio.Task[None]) -> None:
        tasks = self._side_tasks.get(tournament_id)
        if tasks is None:
            return
        tasks.discard(task)
        if not tasks:
            del self._side_tasks[tournament_id]

    async def _update_success(self, candidate_id: str, review: Review) -> None:
        probability = review.metrics.get("overall_score")
        if isinstance(probability, bool) or not isinstance(probability, int | float):
            logger.warning("成功確率が不正です: candidate=%s", candidate_id)
            return
        if not 0 <= probability <= 100:
            logger.warning("成功確率が範囲外です: candidate=%s value=%s", candidate_id, probability)
            return

        factors = review.metrics.get("success_factors")
        if not isinstance(factors, Mapping):
            factors = {}
        try:
            await self._store.update_candidate(  # type: ignore[union-attr]
                candidate_id,
                success_probability=float(probability),
                success_factors={
                    "factors": _as_list(factors.get("factors")),
                    "recommendations": _as_list(factors.get("recommendations")),
                },
            )
        except Exception:
            logger.warning("成功確率の更新に失敗: candidate=%s", candidate_id, exc_info=True)
            return
        logger.debug("成功確率を更新: candidate=%s %.1f%%", candidate_id, probability)

    async def drain(self, tournament_id: str | None = None) -> None:
        """未完了の副作用更新を待つ

        Args:
            tournament_id: 指定した場合はそのトーナメントの更新のみ待つ
        """
        while True:
            if tournament_id is None:
                tasks = [t for group in self._side_tasks.values() for t in group]
            else:
                tasks = list(self._side_tasks.get(tournament_id, ()))
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)
