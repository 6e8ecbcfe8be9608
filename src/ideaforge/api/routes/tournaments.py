"""Tournaments エンドポイント

トーナメントの開始・参照・キャンセル。
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import ValidationError

from ...core import GenerationFailure, get_settings
from ...core.models import Candidate, Review, Tournament
from ..dependencies import AppStateDep
from ..models import CreateTournamentRequest, TournamentDetailResponse

router = APIRouter(prefix="/tournaments", tags=["Tournaments"])


async def _get_tournament_or_404(state: AppStateDep, tournament_id: str) -> Tournament:
    tournament = await state.store.get_tournament(tournament_id)
    if tournament is None:
        raise HTTPException(status_code=404, detail=f"Tournament {tournament_id} not found")
    return tournament


@router.post("", response_model=Tournament, status_code=status.HTTP_201_CREATED)
async def create_tournament(request: CreateTournamentRequest, state: AppStateDep):
    """トーナメントを開始（ラウンド処理はバックグラウンドで実行）"""
    try:
        config = request.to_config(get_settings())
    except ValidationError as exc:
        raise HTTPException(
            status_code=422, detail=exc.errors(include_url=False, include_context=False)
        ) from exc
    try:
        handle = await state.coordinator.start_tournament(config)
    except GenerationFailure as exc:
        raise HTTPException(status_code=502, detail=f"Seed generation failed: {exc}") from exc
    return handle.tournament


@router.get("", response_model=list[Tournament])
async def list_tournaments(state: AppStateDep):
    """トーナメント一覧を取得"""
    return await state.store.list_tournaments()


@router.get("/feedback/{candidate_id}/{reviewer_id}", response_model=Review)
async def get_feedback(candidate_id: str, reviewer_id: str, state: AppStateDep):
    """候補に対する特定レビュアーのレビューを取得"""
    reviews = await state.store.get_reviews(candidate_id)
    for review in reviews:
        if review.reviewer_id == reviewer_id:
            return review
    raise HTTPException(
        status_code=404,
        detail=f"Review by {reviewer_id} for candidate {candidate_id} not found",
    )


@router.get("/{tournament_id}", response_model=TournamentDetailResponse)
async def get_tournament(tournament_id: str, state: AppStateDep):
    """トーナメント詳細とラウンド記録を取得"""
    tournament = await _get_tournament_or_404(state, tournament_id)
    records = await state.store.list_round_records(tournament_id)
    return TournamentDetailResponse(
        tournament=tournament,
        rounds=[record.model_dump(mode="json") for record in records],
    )


@router.get("/{tournament_id}/ideas", response_model=list[Candidate])
async def list_ideas(
    tournament_id: str,
    state: AppStateDep,
    round: int | None = Query(default=None, ge=0, description="生成ラウンドで絞り込み"),
):
    """トーナメントの候補一覧を取得"""
    await _get_tournament_or_404(state, tournament_id)
    return await state.store.list_candidates(tournament_id, round_number=round)


@router.get("/{tournament_id}/champions", response_model=list[Candidate])
async def list_champions(tournament_id: str, state: AppStateDep):
    """各レーンの現チャンピオンを取得"""
    await _get_tournament_or_404(state, tournament_id)
    return await state.store.get_champions(tournament_id)


@router.post("/{tournament_id}/cancel", response_model=Tournament)
async def cancel_tournament(tournament_id: str, state: AppStateDep):
    """トーナメントをキャンセル（次のラウンドから停止）"""
    try:
        return await state.coordinator.cancel_tournament(tournament_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Tournament {tournament_id} not found") from exc
