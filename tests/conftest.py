"""IdeaForge テスト設定"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from ideaforge.core.models import Candidate, Review, Tournament, TournamentConfig
from ideaforge.core.storage import InMemoryStore
from ideaforge.reviewers import ReviewerPool, ReviewOutput
from ideaforge.scoring import ReplacementPolicy, ScoreAggregator, WeightConfig
from ideaforge.tournament import EventBroadcaster, TournamentCoordinator


@pytest.fixture(autouse=True)
def reset_singletons():
    """シングルトンをテストごとにリセット"""
    import ideaforge.core.config as config_module
    import ideaforge.scoring.weights as weights_module

    EventBroadcaster.reset()
    config_module._settings = None
    weights_module._weight_config = None
    yield
    EventBroadcaster.reset()
    config_module._settings = None
    weights_module._weight_config = None


@pytest.fixture
def tournament_config() -> TournamentConfig:
    """テスト用のトーナメント設定"""
    return TournamentConfig(
        drug_name="Drug-X",
        indication="Type 2 diabetes",
        strategic_goals=["expand_label", "generate_real_world_evidence"],
        geography=["us", "DE"],
        lanes=3,
        max_rounds=3,
    )


@pytest.fixture
def store() -> InMemoryStore:
    """インメモリストア"""
    return InMemoryStore()


def make_candidate(tournament_id: str = "t-1", lane_id: int = 0, **kwargs: Any) -> Candidate:
    """テスト用の候補を作成"""
    defaults: dict[str, Any] = {
        "tournament_id": tournament_id,
        "lane_id": lane_id,
        "title": f"Lane {lane_id} study",
        "strategic_goals": ["expand_label"],
        "geography": ["US"],
    }
    defaults.update(kwargs)
    return Candidate(**defaults)


def make_review(candidate_id: str, reviewer_id: str, score: float, **kwargs: Any) -> Review:
    """テスト用のレビューを作成"""
    return Review(candidate_id=candidate_id, reviewer_id=reviewer_id, score=score, **kwargs)


class FixedReviewer:
    """候補IDごとに固定スコアを返すレビュアー

    scores に無い候補は default を返す。
    """

    def __init__(self, default: float = 0.5, scores: dict[str, float] | None = None):
        self.default = default
        self.scores = scores or {}
        self.calls: list[tuple[str, str]] = []

    async def review(self, candidate: Candidate, reviewer_id: str) -> ReviewOutput:
        self.calls.append((candidate.id, reviewer_id))
        score = self.scores.get(candidate.id, self.default)
        return ReviewOutput(score=score, strengths=["ok"], weaknesses=[f"{reviewer_id}: 改善余地"])


class SequenceGenerator:
    """レーンごとに連番IDの候補を生成するジェネレーター

    IDは "{tournament}-{lane}-r{round}" 形式（シードは round=0）。
    fail_lanes に含まれるレーンではチャレンジャー生成が失敗する。
    """

    def __init__(self, fail_lanes: set[int] | None = None):
        self.fail_lanes = fail_lanes or set()
        self.challenger_rounds: list[int] = []

    async def generate_seeds(self, tournament: Tournament) -> list[Candidate]:
        return [
            make_candidate(
                tournament.id,
                lane,
                id=f"{tournament.id}-{lane}-r0",
                strategic_goals=tournament.config.strategic_goals,
            )
            for lane in range(tournament.config.lanes)
        ]

    async def generate_challenger(
        self, champion: Candidate, reviews: list[Review], round_number: int
    ) -> Candidate:
        self.challenger_rounds.append(round_number)
        if champion.lane_id in self.fail_lanes:
            raise RuntimeError(f"generator exploded on lane {champion.lane_id}")
        return make_candidate(
            champion.tournament_id,
            champion.lane_id,
            id=f"{champion.tournament_id}-{champion.lane_id}-r{round_number}",
            round=round_number,
            parent_id=champion.id,
            strategic_goals=champion.strategic_goals,
        )


class RecordingSink:
    """受信した更新を記録するシンク"""

    def __init__(self) -> None:
        self.updates: list[Any] = []
        self.closed = False

    def send(self, update: Any) -> None:
        self.updates.append(update)

    def close(self) -> None:
        self.closed = True


def build_coordinator(
    store: InMemoryStore,
    reviewer: Any,
    generator: Any | None = None,
    reviewer_ids: list[str] | None = None,
    broadcaster: EventBroadcaster | None = None,
    persistence_retries: int = 2,
) -> TournamentCoordinator:
    """単一軸の重みでコーディネーターを組み立てる"""
    ids = reviewer_ids or ["R1", "R2", "R3"]
    return TournamentCoordinator(
        store=store,
        generator=generator or SequenceGenerator(),
        reviewer_pool=ReviewerPool(reviewer, reviewer_ids=ids, timeout=1.0, store=store),
        aggregator=ScoreAggregator(WeightConfig.single_axis(ids)),
        policy=ReplacementPolicy(0.005),
        broadcaster=broadcaster or EventBroadcaster(),
        persistence_retries=persistence_retries,
    )


async def wait_until(predicate, timeout: float = 5.0, interval: float = 0.01) -> None:
    """条件が満たされるまで待つ"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met within timeout")
        await asyncio.sleep(interval)
