"""IdeaForge 設定管理モジュール

Pydantic Settingsを使用した型安全な設定管理。
ideaforge.config.yaml と環境変数から設定を読み込む。
"""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# 既定のレビュアー構成
DEFAULT_REVIEWER_IDS: list[str] = [
    "CLIN",
    "STAT",
    "SAF",
    "REG",
    "HEOR",
    "OPS",
    "PADV",
    "ETH",
    "COMM",
    "SUC",
]


class StorageConfig(BaseModel):
    """永続化設定"""

    backend: Literal["memory", "jsonl"] = Field(default="jsonl")
    vault_path: str = Field(default="./Vault")


class TournamentDefaults(BaseModel):
    """トーナメント設定"""

    default_lanes: int = Field(default=5, ge=1, le=26, description="既定レーン数")
    default_max_rounds: int = Field(default=3, ge=1, le=20, description="既定最大ラウンド数")
    replacement_threshold: float = Field(
        default=0.005, ge=0.0, le=0.5, description="チャンピオン交代のスコア差しきい値"
    )
    persistence_retries: int = Field(
        default=2, ge=0, le=10, description="ラウンド記録書き込みのリトライ回数"
    )


class ReviewConfig(BaseModel):
    """レビュー設定"""

    reviewer_ids: list[str] = Field(default_factory=lambda: list(DEFAULT_REVIEWER_IDS))
    timeout_seconds: float = Field(default=120.0, gt=0, description="レビュアー単位のタイムアウト秒")
    success_reviewer_id: str | None = Field(
        default="SUC", description="成功確率メタデータを更新するレビュアー"
    )
    heuristic_base_score: float = Field(default=0.6, ge=0.0, le=1.0)


class ScoringConfig(BaseModel):
    """スコア集計設定"""

    weights_path: str | None = Field(
        default=None, description="重みテーブルYAML（未設定時は同梱の既定値）"
    )
    complexity_penalty: bool | None = Field(
        default=None, description="複雑度ペナルティ（未設定時は重みテーブルの指定に従う）"
    )


class CORSConfig(BaseModel):
    """CORS設定"""

    enabled: bool = Field(default=True, description="CORSを有効にするか")
    allow_origins: list[str] = Field(
        default=["*"],
        description="許可するオリジン（本番では具体的なオリジンを指定）",
    )
    allow_credentials: bool = Field(default=True)
    allow_methods: list[str] = Field(default=["*"])
    allow_headers: list[str] = Field(default=["*"])


class ServerConfig(BaseModel):
    """サーバー設定"""

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, ge=1, le=65535)
    cors: CORSConfig = Field(default_factory=CORSConfig)


class StreamConfig(BaseModel):
    """ライブ配信設定"""

    keepalive_seconds: float = Field(default=15.0, gt=0)
    queue_size: int = Field(default=100, ge=1, le=10000, description="シンク毎の未送信上限")


class LoggingConfig(BaseModel):
    """ロギング設定"""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")


class IdeaForgeSettings(BaseSettings):
    """IdeaForge全体設定

    設定の優先順位:
    1. 環境変数
    2. ideaforge.config.yaml
    3. デフォルト値
    """

    model_config = SettingsConfigDict(
        env_prefix="IDEAFORGE_",
        env_nested_delimiter="__",
    )

    storage: StorageConfig = Field(default_factory=StorageConfig)
    tournament: TournamentDefaults = Field(default_factory=TournamentDefaults)
    review: ReviewConfig = Field(default_factory=ReviewConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, config_path: Path | str | None = None) -> "IdeaForgeSettings":
        """YAMLファイルから設定を読み込む

        Args:
            config_path: 設定ファイルパス。Noneの場合はデフォルトパスを探索

        Returns:
            IdeaForgeSettings インスタンス
        """
        if config_path is None:
            search_paths = [
                Path.cwd() / "ideaforge.config.yaml",
                Path.cwd() / "ideaforge.config.yml",
                Path.home() / ".ideaforge" / "config.yaml",
            ]
            for path in search_paths:
                if path.exists():
                    config_path = path
                    break

        if config_path and Path(config_path).exists():
            with open(config_path, encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f) or {}
            return cls.model_validate(yaml_config)

        return cls()

    def get_vault_path(self) -> Path:
        """Vaultパスを絶対パスで取得"""
        vault = Path(self.storage.vault_path)
        if not vault.is_absolute():
            vault = Path.cwd() / vault
        return vault.resolve()


# グローバル設定インスタンス（遅延初期化）
_settings: IdeaForgeSettings | None = None


def get_settings() -> IdeaForgeSettings:
    """設定シングルトンを取得"""
    global _settings
    if _settings is None:
        _settings = IdeaForgeSettings.from_yaml()
    return _settings


def reload_settings(config_path: Path | str | None = None) -> IdeaForgeSettings:
    """設定を再読み込み"""
    global _settings
    _settings = IdeaForgeSettings.from_yaml(config_path)
    return _settings
