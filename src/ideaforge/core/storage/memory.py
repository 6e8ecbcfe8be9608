"""インメモリ永続化ストア

テストと単発実行用。JsonlStore はこのクラスを継承し、
変更を確定する前に _persist() でジャーナルに書き出す。
"""

from __future__ import annotations

import threading
from typing import Any

from ..errors import PersistenceFailure
from ..models import Candidate, Review, RoundRecord, Tournament

# 生成後に変更できない候補フィールド
IMMUTABLE_CANDIDATE_FIELDS = frozenset({"id", "tournament_id", "lane_id", "round", "created_at"})


class InMemoryStore:
    """PersistenceGateway のインメモリ実装

    全ての変更はロック下で行い、同一レーンのチャンピオンが
    常に高々1件であることを保証する。
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._tournaments: dict[str, Tournament] = {}
        self._candidates: dict[str, Candidate] = {}
        self._reviews: dict[str, Review] = {}
        self._rounds: dict[str, RoundRecord] = {}

    def _persist(self, tournament_id: str, kind: str, data: dict[str, Any]) -> None:
        """変更を確定する前のフック（インメモリでは何もしない）"""

    # --- Tournament ---

    async def create_tournament(self, tournament: Tournament) -> Tournament:
        with self._lock:
            existing = self._tournaments.get(tournament.id)
            if existing is not None:
                return existing.model_copy(deep=True)
            self._persist(tournament.id, "tournament", tournament.model_dump(mode="json"))
            self._tournaments[tournament.id] = tournament.model_copy(deep=True)
            return tournament

    async def get_tournament(self, tournament_id: str) -> Tournament | None:
        with self._lock:
            tournament = self._tournaments.get(tournament_id)
            return tournament.model_copy(deep=True) if tournament else None

    async def list_tournaments(self) -> list[Tournament]:
        with self._lock:
            tournaments = sorted(self._tournaments.values(), key=lambda t: t.created_at)
            return [t.model_copy(deep=True) for t in tournaments]

    async def update_tournament(self, tournament_id: str, **fields: Any) -> Tournament:
        with self._lock:
            current = self._tournaments.get(tournament_id)
            if current is None:
                raise KeyError(f"Tournament not found: {tournament_id}")
            if "id" in fields and fields["id"] != current.id:
                raise ValueError("Tournament id cannot be changed")
            updated = Tournament.model_validate({**current.model_dump(), **fields})
            self._persist(tournament_id, "tournament", updated.model_dump(mode="json"))
            self._tournaments[tournament_id] = updated
            return updated.model_copy(deep=True)

    # --- Candidate ---

    async def create_candidate(self, candidate: Candidate) -> Candidate:
        with self._lock:
            existing = self._candidates.get(candidate.id)
            if existing is not None:
                return existing.model_copy(deep=True)
            if candidate.is_champion:
                self._check_single_champion(candidate)
            self._persist(candidate.tournament_id, "candidate", candidate.model_dump(mode="json"))
            self._candidates[candidate.id] = candidate.model_copy(deep=True)
            return candidate

    async def get_candidate(self, candidate_id: str) -> Candidate | None:
        with self._lock:
            candidate = self._candidates.get(candidate_id)
            return candidate.model_copy(deep=True) if candidate else None

    async def update_candidate(self, candidate_id: str, **fields: Any) -> Candidate:
        """候補を部分更新する

        Raises:
            KeyError: 候補が存在しない場合
            ValueError: 不変フィールドの変更、またはチャンピオン重複の場合
        """
        with self._lock:
            current = self._candidates.get(candidate_id)
            if current is None:
                raise KeyError(f"Candidate not found: {candidate_id}")
            for name in IMMUTABLE_CANDIDATE_FIELDS & fields.keys():
                if fields[name] != getattr(current, name):
                    raise ValueError(f"Candidate field '{name}' is immutable")
            updated = Candidate.model_validate({**current.model_dump(), **fields})
            if updated.is_champion and not current.is_champion:
                self._check_single_champion(updated)
            self._persist(updated.tournament_id, "candidate", updated.model_dump(mode="json"))
            self._candidates[candidate_id] = updated
            return updated.model_copy(deep=True)

    async def list_candidates(
        self, tournament_id: str, round_number: int | None = None
    ) -> list[Candidate]:
        with self._lock:
            candidates = [
                c
                for c in self._candidates.values()
                if c.tournament_id == tournament_id
                and (round_number is None or c.round == round_number)
            ]
            candidates.sort(key=lambda c: (c.round, c.lane_id))
            return [c.model_copy(deep=True) for c in candidates]

    async def get_champions(self, tournament_id: str) -> list[Candidate]:
        with self._lock:
            champions = [
                c
                for c in self._candidates.values()
                if c.tournament_id == tournament_id and c.is_champion
            ]
            champions.sort(key=lambda c: c.lane_id)
            return [c.model_copy(deep=True) for c in champions]

    async def replace_champion(
        self, old_champion_id: str, new_champion_id: str, score_change: float
    ) -> Candidate:
        """チャンピオンを原子的に入れ替える

        Returns:
            新チャンピオン
        """
        with self._lock:
            old = self._candidates.get(old_champion_id)
            new = self._candidates.get(new_champion_id)
            if old is None or new is None:
                raise KeyError(f"Candidate not found: {old_champion_id} / {new_champion_id}")
            if not old.is_champion:
                raise ValueError(f"Candidate {old_champion_id} is not a champion")
            if (old.tournament_id, old.lane_id) != (new.tournament_id, new.lane_id):
                raise ValueError("Champion and challenger must share tournament and lane")

            demoted = old.model_copy(update={"is_champion": False})
            promoted = new.model_copy(update={"is_champion": True, "score_change": score_change})
            self._persist(old.tournament_id, "candidate", demoted.model_dump(mode="json"))
            self._persist(new.tournament_id, "candidate", promoted.model_dump(mode="json"))
            self._candidates[old.id] = demoted
            self._candidates[new.id] = promoted
            return promoted.model_copy(deep=True)

    def _check_single_champion(self, candidate: Candidate) -> None:
        for other in self._candidates.values():
            if (
                other.id != candidate.id
                and other.is_champion
                and other.tournament_id == candidate.tournament_id
                and other.lane_id == candidate.lane_id
            ):
                raise ValueError(
                    f"Lane {candidate.lane_id} already has champion {other.id}"
                )

    # --- Review ---

    async def create_review(self, review: Review) -> Review:
        with self._lock:
            existing = self._reviews.get(review.id)
            if existing is not None:
                return existing
            candidate = self._candidates.get(review.candidate_id)
            if candidate is None:
                raise KeyError(f"Candidate not found: {review.candidate_id}")
            self._persist(candidate.tournament_id, "review", review.model_dump(mode="json"))
            self._reviews[review.id] = review
            return review

    async def get_reviews(self, candidate_id: str) -> list[Review]:
        with self._lock:
            reviews = [r for r in self._reviews.values() if r.candidate_id == candidate_id]
            reviews.sort(key=lambda r: (r.created_at, r.reviewer_id))
            return reviews

    # --- RoundRecord ---

    async def create_round_record(self, record: RoundRecord) -> RoundRecord:
        """ラウンド記録を保存する

        同一ラウンドの再書き込みは内容が同じなら既存を返す。

        Raises:
            PersistenceFailure: 内容の異なる記録で上書きしようとした場合
        """
        with self._lock:
            existing = self._rounds.get(record.record_id)
            if existing is not None:
                if existing.digest != record.digest:
                    raise PersistenceFailure(
                        f"Round {record.round_number} of {record.tournament_id} "
                        "is already persisted with different content"
                    )
                return existing
            self._persist(record.tournament_id, "round", record.model_dump(mode="json"))
            self._rounds[record.record_id] = record
            return record

    async def list_round_records(self, tournament_id: str) -> list[RoundRecord]:
        with self._lock:
            records = [r for r in self._rounds.values() if r.tournament_id == tournament_id]
            records.sort(key=lambda r: r.round_number)
            return records

    # --- リプレイ用 ---

    def _apply(self, kind: str, data: dict[str, Any]) -> None:
        """ジャーナルのエントリをメモリ状態に反映（永続化しない）"""
        if kind == "tournament":
            tournament = Tournament.model_validate(data)
            self._tournaments[tournament.id] = tournament
        elif kind == "candidate":
            candidate = Candidate.model_validate(data)
            self._candidates[candidate.id] = candidate
        elif kind == "review":
            review = Review.model_validate(data)
            self._reviews[review.id] = review
        elif kind == "round":
            record = RoundRecord.model_validate(data)
            self._rounds[record.record_id] = record
        else:
            raise ValueError(f"Unknown journal kind: {kind}")
