"""レビュアープールのテスト

並列評価、劣化レビューへの置き換え、出力の正規化、
成功確率メタデータの非同期更新を検証する。
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from ideaforge.core.errors import ReviewFailure
from ideaforge.reviewers import (
    REVIEWER_IDS,
    HeuristicReviewer,
    Reviewer,
    ReviewerPool,
    ReviewOutput,
    normalize_output,
)
from conftest import make_candidate


class ScriptedReviewer:
    """レビュアーIDごとに振る舞いを切り替えるレビュアー"""

    def __init__(self, slow: set[str] | None = None, broken: set[str] | None = None, outputs=None):
        self.slow = slow or set()
        self.broken = broken or set()
        self.outputs = outputs or {}

    async def review(self, candidate, reviewer_id):
        if reviewer_id in self.slow:
            await asyncio.sleep(10)
        if reviewer_id in self.broken:
            raise RuntimeError("model unavailable")
        if reviewer_id in self.outputs:
            return self.outputs[reviewer_id]
        return ReviewOutput(score=0.7, strengths=["clear"], weaknesses=["thin"])


class TestNormalizeOutput:
    """normalize_output のテスト"""

    def test_dict_output(self):
        """辞書出力をReviewに変換する"""
        # Act
        review = normalize_output("c1", "CLIN", {"score": 0.8, "strengths": ["a"], "weaknesses": ["b"]})

        # Assert
        assert review.score == 0.8
        assert review.strengths == ["a"]
        assert review.weaknesses == ["b"]
        assert review.degraded is False

    def test_missing_score_defaults_to_half(self):
        """スコアが無い・数値でない場合は0.5"""
        assert normalize_output("c1", "CLIN", {}).score == 0.5
        assert normalize_output("c1", "CLIN", {"score": "high"}).score == 0.5

    def test_score_is_clamped(self):
        """範囲外のスコアは丸められる"""
        assert normalize_output("c1", "CLIN", {"score": 3}).score == 1.0

    def test_non_list_fields_become_empty(self):
        """リストでない strengths / weaknesses は空リスト"""
        review = normalize_output("c1", "CLIN", {"score": 0.5, "strengths": "great", "weaknesses": None})
        assert review.strengths == []
        assert review.weaknesses == []

    def test_unexpected_type_raises(self):
        """想定外の型は ReviewFailure"""
        with pytest.raises(ReviewFailure):
            normalize_output("c1", "CLIN", "looks good")


class TestReviewerPool:
    """ReviewerPool.review のテスト"""

    @pytest.mark.asyncio
    async def test_one_review_per_reviewer_in_order(self):
        """レジストリの順序で1人1件のレビューを返す"""
        # Arrange
        pool = ReviewerPool(ScriptedReviewer(), reviewer_ids=REVIEWER_IDS)

        # Act
        reviews = await pool.review(make_candidate())

        # Assert
        assert [r.reviewer_id for r in reviews] == REVIEWER_IDS

    @pytest.mark.asyncio
    async def test_timeout_becomes_degraded_review(self):
        """タイムアウトしたレビュアーはスコア0の劣化レビューになる"""
        # Arrange
        pool = ReviewerPool(ScriptedReviewer(slow={"ETH"}), reviewer_ids=REVIEWER_IDS, timeout=0.05)

        # Act
        reviews = await pool.review(make_candidate())

        # Assert
        assert len(reviews) == 10
        nominal = [r for r in reviews if not r.degraded]
        degraded = [r for r in reviews if r.degraded]
        assert len(nominal) == 9
        assert len(degraded) == 1
        assert degraded[0].reviewer_id == "ETH"
        assert degraded[0].score == 0.0
        assert degraded[0].weaknesses[0].startswith("Error processing review:")

    @pytest.mark.asyncio
    async def test_exception_becomes_degraded_review(self):
        """例外を送出したレビュアーも劣化レビューになる"""
        # Arrange
        pool = ReviewerPool(ScriptedReviewer(broken={"CLIN", "STAT"}), reviewer_ids=["CLIN", "STAT", "SAF"])

        # Act
        reviews = await pool.review(make_candidate())

        # Assert
        assert [r.degraded for r in reviews] == [True, True, False]
        assert "model unavailable" in reviews[0].weaknesses[0]

    @pytest.mark.asyncio
    async def test_malformed_output_becomes_degraded(self):
        """正規化できない出力は劣化レビューになる"""
        # Arrange
        pool = ReviewerPool(ScriptedReviewer(outputs={"REG": 42}), reviewer_ids=["REG"])

        # Act
        reviews = await pool.review(make_candidate())

        # Assert
        assert reviews[0].degraded is True
        assert reviews[0].score == 0.0

    @pytest.mark.asyncio
    async def test_unserializable_metrics_become_degraded(self):
        """JSON化できない metrics を含む出力は劣化レビューになる"""
        # Arrange
        outputs = {"REG": {"score": 0.5, "metrics": {"raw": object()}}}
        pool = ReviewerPool(ScriptedReviewer(outputs=outputs), reviewer_ids=["CLIN", "REG"])

        # Act
        reviews = await pool.review(make_candidate())

        # Assert
        assert [r.degraded for r in reviews] == [False, True]
        assert reviews[1].metrics == {}
        assert reviews[1].weaknesses[0].startswith("Error processing review:")


class TestSuccessMetadata:
    """成功確率メタデータの更新"""

    @pytest.mark.asyncio
    async def test_success_reviewer_updates_candidate(self, store):
        """成功確率レビュアーの出力で候補を更新する"""
        # Arrange
        candidate = await store.create_candidate(make_candidate())
        pool = ReviewerPool(HeuristicReviewer(base_score=0.6), reviewer_ids=["CLIN", "SUC"], store=store)

        # Act
        await pool.review(candidate)
        await pool.drain()

        # Assert
        updated = await store.get_candidate(candidate.id)
        assert updated.success_probability == pytest.approx(60.0)
        assert updated.success_factors["recommendations"] == ["主要評価項目を1つに絞る"]

    @pytest.mark.asyncio
    async def test_out_of_range_probability_ignored(self, store):
        """範囲外の成功確率は無視する"""
        # Arrange
        candidate = await store.create_candidate(make_candidate())
        outputs = {"SUC": {"score": 0.5, "metrics": {"overall_score": 140}}}
        pool = ReviewerPool(ScriptedReviewer(outputs=outputs), reviewer_ids=["SUC"], store=store)

        # Act
        await pool.review(candidate)
        await pool.drain()

        # Assert
        assert (await store.get_candidate(candidate.id)).success_probability is None

    @pytest.mark.asyncio
    async def test_update_failure_does_not_fail_review(self):
        """メタデータ更新の失敗はレビュー結果に影響しない"""
        # Arrange
        store = MagicMock()
        store.update_candidate = AsyncMock(side_effect=KeyError("c1"))
        outputs = {"SUC": {"score": 0.5, "metrics": {"overall_score": 40}}}
        pool = ReviewerPool(ScriptedReviewer(outputs=outputs), reviewer_ids=["SUC"], store=store)

        # Act
        reviews = await pool.review(make_candidate())
        await pool.drain()

        # Assert
        assert reviews[0].score == 0.5
        store.update_candidate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_drain_waits_only_for_given_tournament(self):
        """drain にトーナメントIDを渡すと、そのトーナメントの更新だけを待つ"""
        # Arrange
        release = asyncio.Event()
        updated: list[str] = []

        async def update_candidate(candidate_id, **fields):
            if candidate_id == "slow":
                await release.wait()
            updated.append(candidate_id)

        store = MagicMock()
        store.update_candidate = update_candidate
        outputs = {"SUC": {"score": 0.5, "metrics": {"overall_score": 40}}}
        pool = ReviewerPool(ScriptedReviewer(outputs=outputs), reviewer_ids=["SUC"], store=store)
        await pool.review(make_candidate("t-slow", id="slow"))
        await pool.review(make_candidate("t-fast", id="fast"))

        # Act
        await asyncio.wait_for(pool.drain("t-fast"), timeout=1.0)
        drained_fast = list(updated)
        release.set()
        await pool.drain()

        # Assert
        assert drained_fast == ["fast"]
        assert sorted(updated) == ["fast", "slow"]


class TestHeuristicReviewer:
    """HeuristicReviewer のテスト"""

    def test_satisfies_protocol(self):
        """Reviewer プロトコルを満たす"""
        assert isinstance(HeuristicReviewer(), Reviewer)

    @pytest.mark.asyncio
    async def test_improvements_raise_score(self):
        """改善点が多いほどスコアが高い"""
        # Arrange
        reviewer = HeuristicReviewer()
        plain = make_candidate()
        improved = make_candidate(key_improvements=["a", "b"], knowledge_gap="gap")

        # Act
        low = await reviewer.review(plain, "CLIN")
        high = await reviewer.review(improved, "CLIN")

        # Assert
        assert high.score > low.score
        assert low.score == pytest.approx(0.6)

    @pytest.mark.asyncio
    async def test_bonus_capped(self):
        """加点は上限で頭打ちになる"""
        candidate = make_candidate(key_improvements=[str(i) for i in range(50)])
        output = await HeuristicReviewer(base_score=0.6).review(candidate, "STAT")
        assert output.score == pytest.approx(0.9)
