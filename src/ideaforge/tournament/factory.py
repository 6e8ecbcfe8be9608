"""設定からエンジン一式を組み立てる"""

from __future__ import annotations

import logging

from ..core.config import IdeaForgeSettings
from ..core.storage import InMemoryStore, JsonlStore, PersistenceGateway
from ..generation import Generator, TemplateGenerator
from ..reviewers import HeuristicReviewer, Reviewer, ReviewerPool
from ..scoring import ReplacementPolicy, ScoreAggregator, get_weight_config
from .broadcaster import EventBroadcaster
from .coordinator import TournamentCoordinator

logger = logging.getLogger(__name__)


def create_store(settings: IdeaForgeSettings) -> PersistenceGateway:
    """設定に応じた永続化ストアを作成"""
    if settings.storage.backend == "memory":
        return InMemoryStore()
    vault = settings.get_vault_path()
    logger.info("JSONLストアを使用: %s", vault)
    return JsonlStore(vault)


def create_coordinator(
    settings: IdeaForgeSettings,
    store: PersistenceGateway,
    *,
    generator: Generator | None = None,
    reviewer: Reviewer | None = None,
    broadcaster: EventBroadcaster | None = None,
) -> TournamentCoordinator:
    """コーディネーターを作成

    generator / reviewer を省略した場合は組み込みの決定的実装を使う。
    """
    review = settings.review
    pool = ReviewerPool(
        reviewer or HeuristicReviewer(base_score=review.heuristic_base_score),
        reviewer_ids=review.reviewer_ids,
        timeout=review.timeout_seconds,
        store=store,
        success_reviewer_id=review.success_reviewer_id,
    )
    aggregator = ScoreAggregator(
        get_weight_config(settings.scoring.weights_path),
        complexity=settings.scoring.complexity_penalty,
    )
    return TournamentCoordinator(
        store=store,
        generator=generator or TemplateGenerator(),
        reviewer_pool=pool,
        aggregator=aggregator,
        policy=ReplacementPolicy(settings.tournament.replacement_threshold),
        broadcaster=broadcaster,
        persistence_retries=settings.tournament.persistence_retries,
    )
