"""データモデルのテスト

スコアの丸め、ラベル生成、ラウンド記録のダイジェストと配信形式を検証する。
"""

from __future__ import annotations

import math

import pytest
from pydantic import ValidationError

from ideaforge.core.models import (
    LaneUpdate,
    Review,
    RoundRecord,
    RoundUpdate,
    ScoredRef,
    TournamentConfig,
    TournamentStatus,
    candidate_label,
    clamp_score,
    lane_label,
)
from conftest import make_candidate


class TestClampScore:
    """clamp_score のテスト"""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(0.5, 0.5), (-0.2, 0.0), (1.7, 1.0), ("0.25", 0.25), (None, 0.0), ("abc", 0.0)],
    )
    def test_clamps_into_unit_interval(self, value, expected):
        """[0, 1] に丸め、数値でない値は0にする"""
        assert clamp_score(value) == expected

    def test_nan_becomes_zero(self):
        """NaNは0として扱う"""
        assert clamp_score(math.nan) == 0.0


class TestLabels:
    """レーン・候補ラベルのテスト"""

    def test_lane_label(self):
        """レーンIDをアルファベットに変換する"""
        assert lane_label(0) == "A"
        assert lane_label(25) == "Z"

    def test_lane_label_out_of_range(self):
        """範囲外のレーンIDはエラー"""
        with pytest.raises(ValueError):
            lane_label(26)

    def test_candidate_label(self):
        """候補ラベルはレーンとバージョンから作る"""
        assert candidate_label(1, 3) == "B_v3"


class TestTournamentConfig:
    """TournamentConfig のテスト"""

    def test_geography_is_normalized(self, tournament_config):
        """地域コードは大文字に正規化される"""
        assert tournament_config.geography == ["US", "DE"]

    def test_invalid_geography_rejected(self):
        """2文字でない地域コードは拒否される"""
        with pytest.raises(ValidationError):
            TournamentConfig(
                drug_name="X", indication="Y", strategic_goals=["other"], geography=["USA"]
            )

    def test_requires_at_least_one_goal(self):
        """戦略目標は1つ以上必要"""
        with pytest.raises(ValidationError):
            TournamentConfig(drug_name="X", indication="Y", strategic_goals=[], geography=["US"])

    def test_lane_limit(self):
        """レーン数は26まで"""
        with pytest.raises(ValidationError):
            TournamentConfig(
                drug_name="X", indication="Y", strategic_goals=["other"], geography=["US"], lanes=27
            )


class TestTournamentStatus:
    """TournamentStatus のテスト"""

    def test_terminal_states(self):
        """completed / failed / cancelled が終端状態"""
        assert TournamentStatus.COMPLETED.is_terminal
        assert TournamentStatus.FAILED.is_terminal
        assert TournamentStatus.CANCELLED.is_terminal
        assert not TournamentStatus.PENDING.is_terminal
        assert not TournamentStatus.IN_PROGRESS.is_terminal


class TestScoreClamping:
    """Candidate / Review のスコア丸め"""

    def test_candidate_overall_score_clamped(self):
        """候補の総合スコアは代入時にも丸められる"""
        # Arrange
        candidate = make_candidate(overall_score=1.5)

        # Act
        candidate.overall_score = -3

        # Assert
        assert candidate.overall_score == 0.0

    def test_review_score_clamped(self):
        """レビュースコアは [0, 1] に丸められる"""
        review = Review(candidate_id="c", reviewer_id="CLIN", score=7)
        assert review.score == 1.0

    def test_review_is_immutable(self):
        """レビューは作成後に変更できない"""
        review = Review(candidate_id="c", reviewer_id="CLIN", score=0.4)
        with pytest.raises(ValidationError):
            review.score = 0.9


class TestRoundRecord:
    """RoundRecord / RoundUpdate のテスト"""

    def _record(self, delta: float = 0.1) -> RoundRecord:
        return RoundRecord(
            tournament_id="t-1",
            round_number=1,
            lane_updates=[
                LaneUpdate(
                    lane_id=0,
                    champion=ScoredRef(id="a", score=0.5),
                    challenger=ScoredRef(id="b", score=0.6),
                    delta=delta,
                    replaced=True,
                ),
                LaneUpdate(lane_id=1, champion=ScoredRef(id="c", score=0.4)),
            ],
        )

    def test_record_id(self):
        """記録IDはトーナメントとラウンドから作られる"""
        assert self._record().record_id == "t-1:1"

    def test_digest_ignores_timestamps(self):
        """ダイジェストはタイムスタンプに依存しない"""
        # Arrange
        first = self._record()
        second = first.model_copy(update={"completed_at": first.completed_at.replace(year=2000)})

        # Assert
        assert first.digest == second.digest

    def test_digest_reflects_content(self):
        """内容が変わるとダイジェストも変わる"""
        assert self._record(0.1).digest != self._record(0.2).digest

    def test_replaced_count(self):
        """交代したレーン数を数える"""
        assert self._record().replaced_count == 1

    def test_round_update_wire_format(self):
        """配信形式は round / lanes / timestamp を持つ"""
        # Act
        payload = RoundUpdate.from_record(self._record()).to_dict()

        # Assert
        assert payload["round"] == 1
        assert isinstance(payload["timestamp"], str)
        lane0, lane1 = payload["lanes"]
        assert lane0 == {
            "laneId": 0,
            "champion": {"id": "a", "score": 0.5},
            "challenger": {"id": "b", "score": 0.6},
            "delta": 0.1,
            "replaced": True,
        }
        assert "challenger" not in lane1
