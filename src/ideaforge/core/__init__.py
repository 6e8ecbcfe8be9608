"""IdeaForge Core モジュール

トーナメントエンジンの基盤:
- Models: トーナメント・候補・レビュー・ラウンド記録
- Config: 設定管理
- Errors: 例外階層
- Storage: 永続化ゲートウェイ
"""

__version__ = "0.1.0"

from .config import IdeaForgeSettings, get_settings, reload_settings
from .errors import (
    AggregationConfigError,
    BroadcastSinkError,
    GenerationFailure,
    IdeaForgeError,
    PersistenceFailure,
    ReviewFailure,
)
from .models import (
    Candidate,
    LaneUpdate,
    Review,
    RoundRecord,
    RoundUpdate,
    ScoredRef,
    Tournament,
    TournamentConfig,
    TournamentStatus,
    generate_id,
)

__all__ = [
    # Config
    "get_settings",
    "reload_settings",
    "IdeaForgeSettings",
    # Errors
    "IdeaForgeError",
    "GenerationFailure",
    "ReviewFailure",
    "AggregationConfigError",
    "PersistenceFailure",
    "BroadcastSinkError",
    # Models
    "Candidate",
    "LaneUpdate",
    "Review",
    "RoundRecord",
    "RoundUpdate",
    "ScoredRef",
    "Tournament",
    "TournamentConfig",
    "TournamentStatus",
    "generate_id",
]
