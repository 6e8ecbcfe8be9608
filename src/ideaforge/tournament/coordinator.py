"""トーナメントコーディネーター

ラウンド0（シード評価）と、ラウンド1..max_rounds（レーン並列の
チャレンジ→レビュー→判定）を実行し、各ラウンドの RoundRecord を
配信・永続化する。

継続条件: ラウンドnで1レーン以上チャンピオンが交代し、かつ n < max_rounds の場合のみ
次のラウンドへ進む。それ以外は completed にする。
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from ..core.errors import GenerationFailure, PersistenceFailure
from ..core.models import (
    Candidate,
    LaneUpdate,
    RoundRecord,
    RoundUpdate,
    ScoredRef,
    Tournament,
    TournamentConfig,
    TournamentStatus,
)
from ..core.storage import PersistenceGateway
from ..generation import Generator
from ..reviewers import ReviewerPool
from ..scoring import ReplacementPolicy, ScoreAggregator
from .broadcaster import EventBroadcaster

logger = logging.getLogger(__name__)


@dataclass
class TournamentHandle:
    """開始済みトーナメントのハンドル

    Attributes:
        tournament: 開始時点のトーナメント
        task: ラウンド処理タスク（完了時に最終状態のトーナメントを返す）
    """

    tournament: Tournament
    task: asyncio.Task[Tournament] = field(repr=False)

    @property
    def tournament_id(self) -> str:
        return self.tournament.id

    async def wait(self) -> Tournament:
        """ラウンド処理の完了を待つ"""
        return await self.task


class TournamentCoordinator:
    """トーナメントのラウンドループを駆動する

    レーン間で共有する状態は永続化ゲートウェイのみ。
    キャンセルは協調的で、ラウンド開始前に保存済みの状態を確認する。
    """

    def __init__(
        self,
        store: PersistenceGateway,
        generator: Generator,
        reviewer_pool: ReviewerPool,
        aggregator: ScoreAggregator,
        policy: ReplacementPolicy | None = None,
        broadcaster: EventBroadcaster | None = None,
        persistence_retries: int = 2,
    ):
        self.store = store
        self.generator = generator
        self.reviewer_pool = reviewer_pool
        self.aggregator = aggregator
        self.policy = policy or ReplacementPolicy()
        self.broadcaster = broadcaster or EventBroadcaster.get_instance()
        self.persistence_retries = persistence_retries
        self._tasks: dict[str, asyncio.Task[Tournament]] = {}

    # =========================================================================
    # 開始・キャンセル
    # =========================================================================

    async def create_tournament(self, config: TournamentConfig) -> Tournament:
        """トーナメントを作成し、シード候補を保存する

        Raises:
            GenerationFailure: シード生成に失敗した場合（トーナメントは failed になる）
        """
        tournament = await self.store.create_tournament(Tournament(config=config))
        try:
            seeds = await self.generator.generate_seeds(tournament)
            self._check_seeds(tournament, seeds)
            for seed in seeds:
                await self.store.create_candidate(seed)
        except Exception as exc:
            error = exc if isinstance(exc, GenerationFailure) else GenerationFailure(str(exc))
            logger.error("シード生成に失敗: tournament=%s (%s)", tournament.id, error)
            await self._finish(tournament.id, TournamentStatus.FAILED, str(error))
            raise error from exc

        self.broadcaster.open(tournament.id)
        logger.info("トーナメント作成: %s (lanes=%d)", tournament.id, config.lanes)
        return tournament

    async def start_tournament(self, config: TournamentConfig) -> TournamentHandle:
        """トーナメントを作成し、ラウンド処理をバックグラウンドで開始する

        ラウンド処理の完了を待たずにハンドルを返す。
        """
        tournament = await self.create_tournament(config)
        return TournamentHandle(tournament=tournament, task=self.resume_tournament(tournament.id))

    def resume_tournament(self, tournament_id: str) -> asyncio.Task[Tournament]:
        """ラウンド処理をバックグラウンドタスクとして開始（実行中なら既存のタスク）"""
        running = self._tasks.get(tournament_id)
        if running is not None:
            return running
        task = asyncio.create_task(
            self.run_tournament(tournament_id), name=f"tournament-{tournament_id}"
        )
        self._tasks[tournament_id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(tournament_id, None))
        return task

    async def cancel_tournament(self, tournament_id: str) -> Tournament:
        """トーナメントをキャンセルする

        実行中のラウンドは最後まで処理され、次のラウンドは開始されない。
        終端状態のトーナメントはそのまま返す。

        Raises:
            KeyError: トーナメントが存在しない場合
        """
        tournament = await self.store.get_tournament(tournament_id)
        if tournament is None:
            raise KeyError(f"Tournament not found: {tournament_id}")
        if tournament.status.is_terminal:
            return tournament
        logger.info("トーナメントをキャンセル: %s", tournament_id)
        return await self.store.update_tournament(
            tournament_id,
            status=TournamentStatus.CANCELLED,
            completed_at=datetime.now(UTC),
        )

    def running_tournaments(self) -> list[str]:
        """ラウンド処理中のトーナメントID"""
        return sorted(self._tasks)

    async def shutdown(self) -> None:
        """実行中のラウンド処理を中断して待つ

        中断したトーナメントは in_progress のまま残り、次回起動時に再開できる。
        """
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.reviewer_pool.drain()

    # =========================================================================
    # ラウンドループ
    # =========================================================================

    async def run_tournament(self, tournament_id: str) -> Tournament:
        """ラウンドループを実行し、最終状態のトーナメントを返す

        永続化済みのラウンド記録がある場合は続きから再開する。

        Raises:
            KeyError: トーナメントが存在しない場合
        """
        tournament = await self.store.get_tournament(tournament_id)
        if tournament is None:
            raise KeyError(f"Tournament not found: {tournament_id}")
        if tournament.status.is_terminal:
            self.broadcaster.close(tournament_id)
            return tournament

        self.broadcaster.open(tournament_id)
        try:
            await self.store.update_tournament(tournament_id, status=TournamentStatus.IN_PROGRESS)
            return await self._round_loop(tournament)
        except Exception as exc:
            logger.exception("トーナメント処理中にエラー: %s", tournament_id)
            return await self._finish(tournament_id, TournamentStatus.FAILED, f"{type(exc).__name__}: {exc}")
        finally:
            self.broadcaster.close(tournament_id)
            await self.reviewer_pool.drain(tournament_id)

    async def _round_loop(self, tournament: Tournament) -> Tournament:
        tid = tournament.id
        max_rounds = tournament.config.max_rounds

        records = await self.store.list_round_records(tid)
        if records:
            last = records[-1]
            if last.round_number > 0 and (last.replaced_count == 0 or last.round_number >= max_rounds):
                return await self._finish(tid, TournamentStatus.COMPLETED)
            round_number = last.round_number + 1
        else:
            if await self._stopped(tid):
                return await self._current(tid)
            record = await self.run_round_zero(tournament)
            if not await self._commit_round(record):
                return await self._current(tid)
            round_number = 1

        while True:
            if await self._stopped(tid):
                logger.info("外部から停止されたためラウンドを開始しない: %s", tid)
                return await self._current(tid)

            record = await self.run_round(tournament, round_number)
            if not await self._commit_round(record):
                return await self._current(tid)

            if round_number >= max_rounds or record.replaced_count == 0:
                break
            round_number += 1

        return await self._finish(tid, TournamentStatus.COMPLETED)

    async def run_round_zero(self, tournament: Tournament) -> RoundRecord:
        """ラウンド0: 全シードを並列に評価し、チャンピオンにする"""
        started_at = datetime.now(UTC)
        seeds = await self.store.list_candidates(tournament.id, round_number=0)
        logger.info("ラウンド0開始: tournament=%s seeds=%d", tournament.id, len(seeds))

        updates = await asyncio.gather(*(self._crown_seed(seed) for seed in seeds))
        return RoundRecord(
            tournament_id=tournament.id,
            round_number=0,
            lane_updates=sorted(updates, key=lambda u: u.lane_id),
            started_at=started_at,
            completed_at=datetime.now(UTC),
        )

    async def _crown_seed(self, seed: Candidate) -> LaneUpdate:
        """シードを評価してチャンピオンにする。レビューの失敗は他レーンに波及させない"""
        score = seed.overall_score
        try:
            reviews = await self.reviewer_pool.review(seed)
            score = self.aggregator.score(seed, reviews)
            for review in reviews:
                await self.store.create_review(review)
        except Exception as exc:
            logger.error(
                "レーン%d ラウンド0 のレビューを記録できないままシードを採用: %s: %s",
                seed.lane_id,
                type(exc).__name__,
                exc,
            )
        await self.store.update_candidate(
            seed.id, overall_score=score, score_change=0.0, is_champion=True
        )
        return LaneUpdate(lane_id=seed.lane_id, champion=ScoredRef(id=seed.id, score=score))

    async def run_round(self, tournament: Tournament, round_number: int) -> RoundRecord:
        """ラウンドn: 全レーンでチャレンジャーを生成・評価し、交代を判定する"""
        started_at = datetime.now(UTC)
        champions = await self.store.get_champions(tournament.id)
        logger.info(
            "ラウンド%d開始: tournament=%s lanes=%d", round_number, tournament.id, len(champions)
        )

        updates = await asyncio.gather(
            *(self._run_lane(champion, round_number) for champion in champions)
        )
        record = RoundRecord(
            tournament_id=tournament.id,
            round_number=round_number,
            lane_updates=sorted(updates, key=lambda u: u.lane_id),
            started_at=started_at,
            completed_at=datetime.now(UTC),
        )
        logger.info(
            "ラウンド%d完了: tournament=%s replaced=%d/%d",
            round_number,
            tournament.id,
            record.replaced_count,
            len(record.lane_updates),
        )
        return record

    async def _run_lane(self, champion: Candidate, round_number: int) -> LaneUpdate:
        """1レーン分の処理。失敗時はチャンピオンを維持する"""
        champion_score = champion.overall_score
        try:
            champion_reviews = await self.store.get_reviews(champion.id)
            champion_score = self.aggregator.score(champion, champion_reviews)

            challenger = await self.generator.generate_challenger(
                champion, champion_reviews, round_number
            )
            self._check_challenger(champion, challenger, round_number)
            challenger = await self.store.create_candidate(challenger)

            reviews = await self.reviewer_pool.review(challenger)
            for review in reviews:
                await self.store.create_review(review)
            challenger_score = self.aggregator.score(challenger, reviews)
            await self.store.update_candidate(challenger.id, overall_score=challenger_score)

            decision = self.policy.decide(champion, champion_score, challenger_score)
            if decision.replaced:
                await self.store.replace_champion(champion.id, challenger.id, decision.score_change)
            else:
                await self.store.update_candidate(
                    champion.id, overall_score=champion_score, score_change=decision.score_change
                )
        except Exception as exc:
            logger.error(
                "レーン%d ラウンド%d を中断し、チャンピオンを維持: %s: %s",
                champion.lane_id,
                round_number,
                type(exc).__name__,
                exc,
            )
            return LaneUpdate(
                lane_id=champion.lane_id,
                champion=ScoredRef(id=champion.id, score=champion_score),
            )

        return LaneUpdate(
            lane_id=champion.lane_id,
            champion=ScoredRef(id=champion.id, score=champion_score),
            challenger=ScoredRef(id=challenger.id, score=challenger_score),
            delta=decision.score_change,
            replaced=decision.replaced,
        )

    # =========================================================================
    # 内部処理
    # =========================================================================

    async def _commit_round(self, record: RoundRecord) -> bool:
        """ラウンド記録を配信してから永続化する

        永続化がリトライ後も失敗した場合はトーナメントを failed にする。

        Returns:
            永続化に成功したか
        """
        tid = record.tournament_id
        delivered = self.broadcaster.publish(tid, RoundUpdate.from_record(record))
        logger.debug("ラウンド%d を %d 件のシンクに配信", record.round_number, delivered)

        last_error: Exception | None = None
        for attempt in range(self.persistence_retries + 1):
            try:
                await self.store.create_round_record(record)
                break
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "ラウンド記録の保存に失敗 (%d/%d): tournament=%s round=%d (%s)",
                    attempt + 1,
                    self.persistence_retries + 1,
                    tid,
                    record.round_number,
                    exc,
                )
        else:
            failure = PersistenceFailure(
                f"Failed to persist round {record.round_number}: {last_error}"
            )
            logger.error("ラウンド記録を保存できないためトーナメントを停止: %s", tid)
            await self._finish(tid, TournamentStatus.FAILED, str(failure))
            return False

        await self.store.update_tournament(tid, current_round=record.round_number)
        return True

    async def _stopped(self, tournament_id: str) -> bool:
        """外部から cancelled / failed にされたか"""
        tournament = await self._current(tournament_id)
        return tournament.status in (TournamentStatus.CANCELLED, TournamentStatus.FAILED)

    async def _current(self, tournament_id: str) -> Tournament:
        tournament = await self.store.get_tournament(tournament_id)
        if tournament is None:
            raise KeyError(f"Tournament not found: {tournament_id}")
        return tournament

    async def _finish(
        self, tournament_id: str, status: TournamentStatus, error: str | None = None
    ) -> Tournament:
        """終端状態にする（既に終端状態なら上書きしない）"""
        current = await self._current(tournament_id)
        if current.status.is_terminal:
            return current
        tournament = await self.store.update_tournament(
            tournament_id, status=status, error=error, completed_at=datetime.now(UTC)
        )
        logger.info(
            "トーナメント終了: %s status=%s round=%d", tournament_id, status, tournament.current_round
        )
        return tournament

    @staticmethod
    def _check_seeds(tournament: Tournament, seeds: list[Candidate]) -> None:
        lanes = tournament.config.lanes
        lane_ids = sorted(seed.lane_id for seed in seeds)
        if lane_ids != list(range(lanes)):
            raise GenerationFailure(f"Expected one seed per lane 0..{lanes - 1}, got lanes {lane_ids}")
        for seed in seeds:
            if seed.tournament_id != tournament.id or seed.round != 0 or seed.is_champion:
                raise GenerationFailure(f"Invalid seed candidate {seed.id}")

    @staticmethod
    def _check_challenger(champion: Candidate, challenger: Candidate, round_number: int) -> None:
        if (
            challenger.tournament_id != champion.tournament_id
            or challenger.lane_id != champion.lane_id
            or challenger.round != round_number
            or challenger.is_champion
            or challenger.id == champion.id
        ):
            raise GenerationFailure(
                f"Invalid challenger for lane {champion.lane_id} round {round_number}"
            )
