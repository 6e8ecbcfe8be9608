"""複雑度ペナルティ

候補の構造的特徴（テキスト量、目標・地域・比較薬の数、
複雑さを示すキーワード）から複雑度比率を求め、
最大0.3のペナルティに変換する。決定的で外部呼び出しはしない。
"""

from __future__ import annotations

from ..core.models import Candidate

# 運用リスクを高めるデザイン要素
COMPLEXITY_KEYWORDS: tuple[str, ...] = (
    "adaptive",
    "biomarker",
    "basket",
    "umbrella",
    "platform",
    "multi-arm",
    "crossover",
    "seamless",
    "interim",
    "companion diagnostic",
    "genomic",
    "enrichment",
)

MAX_PENALTY = 0.3
PENALTY_EXPONENT = 0.8

# 各特徴が比率1.0に達する値
_TEXT_LENGTH_SATURATION = 2000
_GOAL_SATURATION = 4
_GEOGRAPHY_SATURATION = 9
_COMPARATOR_SATURATION = 4
_KEYWORD_SATURATION = 4


def _candidate_text(candidate: Candidate) -> str:
    parts = [
        candidate.title,
        candidate.target_subpopulation or "",
        candidate.knowledge_gap or "",
        candidate.innovation_justification or "",
    ]
    return " ".join(p for p in parts if p)


def complexity_ratio(candidate: Candidate) -> float:
    """複雑度比率 [0, 1] を計算"""
    text = _candidate_text(candidate)
    lowered = text.lower()
    keyword_hits = sum(1 for kw in COMPLEXITY_KEYWORDS if kw in lowered)

    features = (
        min(1.0, len(text) / _TEXT_LENGTH_SATURATION),
        min(1.0, max(0, len(candidate.strategic_goals) - 1) / _GOAL_SATURATION),
        min(1.0, max(0, len(candidate.geography) - 1) / _GEOGRAPHY_SATURATION),
        min(1.0, len(candidate.comparator_drugs) / _COMPARATOR_SATURATION),
        min(1.0, keyword_hits / _KEYWORD_SATURATION),
    )
    return sum(features) / len(features)


def complexity_penalty(candidate: Candidate) -> float:
    """複雑度ペナルティ [0, 0.3]"""
    return MAX_PENALTY * complexity_ratio(candidate) ** PENALTY_EXPONENT
