"""エラー分類

トーナメントエンジンで発生する例外の階層。
レーン単位の失敗は握りつぶさずログに残し、そのレーンだけを劣化させる。
永続化の失敗のみがトーナメント全体を停止させる。
"""


class IdeaForgeError(Exception):
    """IdeaForge例外の基底クラス"""

    pass


class GenerationFailure(IdeaForgeError):
    """Generatorの失敗または不正な候補

    当該レーンはこのラウンドをスキップし、現チャンピオンを維持する。
    """

    pass


class ReviewFailure(IdeaForgeError):
    """個別レビュアーの失敗またはタイムアウト

    劣化Review（score=0）に置き換えられ、バッチは継続する。
    """

    pass


class AggregationConfigError(IdeaForgeError):
    """重みテーブルの欠落・破損"""

    pass


class PersistenceFailure(IdeaForgeError):
    """ラウンド記録の永続化失敗（致命的）"""

    pass


class BroadcastSinkError(IdeaForgeError):
    """配信先シンクへの書き込み失敗"""

    pass
