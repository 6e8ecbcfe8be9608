"""スコアリング

重みテーブル、総合スコア集計、複雑度ペナルティ、チャンピオン交代判定。
"""

from .aggregator import ScoreAggregator, compute_overall_score
from .complexity import complexity_penalty, complexity_ratio
from .replacement import (
    DEFAULT_REPLACEMENT_THRESHOLD,
    LaneDecision,
    ReplacementPolicy,
    should_replace,
)
from .weights import (
    WeightConfig,
    get_weight_config,
    load_weight_config,
    reload_weight_config,
)

__all__ = [
    "ScoreAggregator",
    "compute_overall_score",
    "complexity_penalty",
    "complexity_ratio",
    "DEFAULT_REPLACEMENT_THRESHOLD",
    "LaneDecision",
    "ReplacementPolicy",
    "should_replace",
    "WeightConfig",
    "get_weight_config",
    "load_weight_config",
    "reload_weight_config",
]
