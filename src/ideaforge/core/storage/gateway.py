"""永続化ゲートウェイ インターフェース

Coordinator が依存する永続化操作の最小集合。
書き込みはIDに対して冪等で、呼び出し側がリトライしてよい。
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from ..models import Candidate, Review, RoundRecord, Tournament


@runtime_checkable
class PersistenceGateway(Protocol):
    """永続化ゲートウェイ"""

    # --- Tournament ---

    async def create_tournament(self, tournament: Tournament) -> Tournament: ...

    async def get_tournament(self, tournament_id: str) -> Tournament | None: ...

    async def list_tournaments(self) -> list[Tournament]: ...

    async def update_tournament(self, tournament_id: str, **fields: Any) -> Tournament: ...

    # --- Candidate ---

    async def create_candidate(self, candidate: Candidate) -> Candidate: ...

    async def get_candidate(self, candidate_id: str) -> Candidate | None: ...

    async def update_candidate(self, candidate_id: str, **fields: Any) -> Candidate: ...

    async def list_candidates(
        self, tournament_id: str, round_number: int | None = None
    ) -> list[Candidate]: ...

    async def get_champions(self, tournament_id: str) -> list[Candidate]: ...

    async def replace_champion(
        self, old_champion_id: str, new_champion_id: str, score_change: float
    ) -> Candidate: ...

    # --- Review ---

    async def create_review(self, review: Review) -> Review: ...

    async def get_reviews(self, candidate_id: str) -> list[Review]: ...

    # --- RoundRecord ---

    async def create_round_record(self, record: RoundRecord) -> RoundRecord: ...

    async def list_round_records(self, tournament_id: str) -> list[RoundRecord]: ...
