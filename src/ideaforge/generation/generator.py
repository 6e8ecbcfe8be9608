"""候補生成

Generator プロトコルと、LLMを使わない決定的な実装 TemplateGenerator。
シードはレーンごとに1件、チャレンジャーはチャンピオンの
レビューで指摘された弱点から改善点を導いて生成する。
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

from ..core.errors import GenerationFailure
from ..core.models import Candidate, Review, Tournament, candidate_label, generate_id

logger = logging.getLogger(__name__)


@runtime_checkable
class Generator(Protocol):
    """候補生成器"""

    async def generate_seeds(self, tournament: Tournament) -> list[Candidate]:
        """レーン数と同数のシード候補を生成する（round=0, lane_id=0..lanes-1）"""
        ...

    async def generate_challenger(
        self, champion: Candidate, reviews: Sequence[Review], round_number: int
    ) -> Candidate:
        """チャンピオンとそのレビューからチャレンジャーを生成する"""
        ...


# レーンごとのデザインの切り口
_SEED_ANGLES: tuple[tuple[str, str], ...] = (
    ("Randomised head-to-head", "comparative effectiveness versus standard of care"),
    ("Real-world registry", "long-term outcomes in routine practice"),
    ("Biomarker-stratified", "response heterogeneity across molecular subgroups"),
    ("Pragmatic dosing", "optimal dose intensity and tolerability"),
    ("Patient-reported outcomes", "quality-of-life impact"),
)

_PHASE_CYCLE: tuple[str, ...] = ("III", "IV", "II")

# 弱点の記述から埋める欠落フィールド
_SUBPOPULATION_HINT = "サブポピュレーション"
_COMPARATOR_HINT = "比較対照"
_GAP_HINT = "エビデンスギャップ"

# 1ラウンドで取り込む改善点の上限
MAX_IMPROVEMENTS_PER_ROUND = 2


def _collect_weaknesses(reviews: Sequence[Review]) -> list[str]:
    """スコアの低いレビューの弱点から順に重複なく集める"""
    seen: set[str] = set()
    weaknesses: list[str] = []
    for review in sorted(reviews, key=lambda r: (r.score, r.reviewer_id)):
        if review.degraded:
            continue
        for weakness in review.weaknesses:
            if weakness not in seen:
                seen.add(weakness)
                weaknesses.append(weakness)
    return weaknesses


class TemplateGenerator:
    """テンプレートベースの決定的な候補生成器"""

    async def generate_seeds(self, tournament: Tournament) -> list[Candidate]:
        config = tournament.config
        goals = config.strategic_goals
        seeds = []
        for lane_id in range(config.lanes):
            design, focus = _SEED_ANGLES[lane_id % len(_SEED_ANGLES)]
            phase = (
                config.study_phase_pref
                if config.study_phase_pref != "any"
                else _PHASE_CYCLE[lane_id % len(_PHASE_CYCLE)]
            )
            # 主目標をレーンごとにずらす
            lane_goals = goals[lane_id % len(goals) :] + goals[: lane_id % len(goals)]
            seeds.append(
                Candidate(
                    tournament_id=tournament.id,
                    lane_id=lane_id,
                    label=candidate_label(lane_id, 1),
                    round=0,
                    title=f"{design} study of {config.drug_name} in {config.indication}",
                    drug_name=config.drug_name,
                    indication=config.indication,
                    strategic_goals=lane_goals,
                    geography=list(config.geography),
                    study_phase=phase,
                    innovation_justification=f"Addresses {focus}",
                    content={
                        "pico": {
                            "population": f"Adults with {config.indication}",
                            "intervention": config.drug_name,
                            "comparator": "Standard of care",
                            "outcomes": focus,
                        },
                        "context": config.additional_context,
                    },
                )
            )
        logger.info("シード生成: tournament=%s lanes=%d", tournament.id, len(seeds))
        return seeds

    async def generate_challenger(
        self, champion: Candidate, reviews: Sequence[Review], round_number: int
    ) -> Candidate:
        if round_number < 1:
            raise GenerationFailure(f"Challengers start at round 1, got {round_number}")

        addressed = [
            w for w in _collect_weaknesses(reviews) if w not in champion.key_improvements
        ][:MAX_IMPROVEMENTS_PER_ROUND]

        updates: dict[str, object] = {}
        joined = " ".join(addressed)
        if _SUBPOPULATION_HINT in joined and not champion.target_subpopulation:
            updates["target_subpopulation"] = f"Treatment-experienced adults with {champion.indication}"
        if _COMPARATOR_HINT in joined and not champion.comparator_drugs:
            updates["comparator_drugs"] = ["Standard of care"]
        if _GAP_HINT in joined and not champion.knowledge_gap:
            updates["knowledge_gap"] = f"Limited comparative evidence for {champion.drug_name}"

        rationale = (
            "; ".join(addressed) if addressed else "Refined design without outstanding weaknesses"
        )
        return champion.model_copy(
            update={
                **updates,
                "id": generate_id(),
                "label": candidate_label(champion.lane_id, round_number + 1),
                "round": round_number,
                "is_champion": False,
                "parent_id": champion.id,
                "improvement_rationale": rationale,
                "key_improvements": [*champion.key_improvements, *addressed],
                "overall_score": 0.0,
                "score_change": None,
                "success_probability": None,
                "success_factors": None,
                "created_at": datetime.now(UTC),
            },
            deep=True,
        )
