"""重みテーブル

戦略目標→評価軸の重みと、レビュアー→評価軸の寄与を保持する。
一度だけ読み込み、参照としてAggregatorに渡す。
"""

from __future__ import annotations

import logging
import math
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ..core.errors import AggregationConfigError

logger = logging.getLogger(__name__)

# 同梱の既定テーブル
DEFAULT_WEIGHTS_PATH = Path(__file__).with_name("strategic_goal_weights.yaml")

AxisWeights = dict[str, float]


def _check_weights(table: dict[str, AxisWeights], name: str) -> None:
    for key, axes in table.items():
        for axis, weight in axes.items():
            if not math.isfinite(weight) or weight < 0:
                raise ValueError(f"{name}[{key}][{axis}] must be a finite non-negative number")


class WeightConfig(BaseModel):
    """スコア集計用の重みテーブル"""

    model_config = ConfigDict(frozen=True)

    strategic_goals: dict[str, AxisWeights] = Field(..., min_length=1)
    reviewer_axis_mapping: dict[str, AxisWeights] = Field(..., min_length=1)
    default_goal: str = Field(default="other", description="未知の目標に使うバケット")
    complexity_penalty: bool = Field(default=False, description="複雑度ペナルティを適用するか")

    @model_validator(mode="after")
    def validate_tables(self) -> WeightConfig:
        if self.default_goal not in self.strategic_goals:
            raise ValueError(f"default_goal '{self.default_goal}' is not defined in strategic_goals")
        _check_weights(self.strategic_goals, "strategic_goals")
        _check_weights(self.reviewer_axis_mapping, "reviewer_axis_mapping")
        return self

    @property
    def axes(self) -> list[str]:
        """全評価軸（決定的な順序）"""
        names: set[str] = set()
        for axes in self.strategic_goals.values():
            names.update(axes)
        return sorted(names)

    def goal_weights(self, goal: str) -> AxisWeights:
        """目標の軸重み（未知の目標は既定バケット）"""
        return self.strategic_goals.get(goal, self.strategic_goals[self.default_goal])

    @classmethod
    def single_axis(cls, reviewer_ids: list[str], axis: str = "overall") -> WeightConfig:
        """全レビュアー・全目標が1軸に重み1.0で寄与する構成"""
        return cls(
            strategic_goals={"other": {axis: 1.0}},
            reviewer_axis_mapping={rid: {axis: 1.0} for rid in reviewer_ids},
        )


def load_weight_config(path: Path | str | None = None) -> WeightConfig:
    """YAMLから重みテーブルを読み込む

    Args:
        path: YAMLファイルパス。Noneの場合は同梱の既定テーブル

    Raises:
        AggregationConfigError: ファイルが存在しない、または内容が不正な場合
    """
    config_path = Path(path) if path is not None else DEFAULT_WEIGHTS_PATH
    try:
        with open(config_path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise AggregationConfigError(f"重みテーブルを読み込めません: {config_path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise AggregationConfigError(f"重みテーブルの形式が不正です: {config_path}")
    try:
        return WeightConfig.model_validate(raw)
    except ValidationError as exc:
        raise AggregationConfigError(f"重みテーブルの内容が不正です: {config_path}: {exc}") from exc


# グローバルインスタンス（遅延初期化）
_weight_config: WeightConfig | None = None


def get_weight_config(path: Path | str | None = None) -> WeightConfig | None:
    """重みテーブルのシングルトンを取得

    初回のみ path（省略時は設定の scoring.weights_path）から読み込む。
    読み込めない場合は警告を出してNoneを返す（Aggregatorは平均にフォールバック）。
    """
    global _weight_config
    if _weight_config is None:
        if path is None:
            from ..core.config import get_settings

            path = get_settings().scoring.weights_path
        try:
            _weight_config = load_weight_config(path)
        except AggregationConfigError:
            logger.warning("重みテーブルが利用できません。単純平均で集計します", exc_info=True)
            return None
    return _weight_config


def reload_weight_config(path: Path | str | None = None) -> WeightConfig:
    """重みテーブルを再読み込み"""
    global _weight_config
    _weight_config = load_weight_config(path)
    return _weight_config
