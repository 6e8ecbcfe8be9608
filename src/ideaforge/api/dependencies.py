"""API 依存性注入

FastAPIの依存性注入パターンでグローバル状態を管理。
テスト時にモックへの差し替えが容易になります。
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends

from ..core import get_settings
from ..core.storage import PersistenceGateway
from ..tournament import EventBroadcaster, TournamentCoordinator, create_coordinator, create_store


class AppState:
    """アプリケーション状態

    シングルトンパターンで状態を管理。
    テスト時は reset() でリセット可能。
    """

    _instance: AppState | None = None

    def __init__(self) -> None:
        self._store: PersistenceGateway | None = None
        self._coordinator: TournamentCoordinator | None = None

    @classmethod
    def get_instance(cls) -> AppState:
        """シングルトンインスタンスを取得"""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """インスタンスをリセット（テスト用）"""
        cls._instance = None

    @property
    def store(self) -> PersistenceGateway:
        """永続化ストアを取得"""
        if self._store is None:
            self._store = create_store(get_settings())
        return self._store

    @store.setter
    def store(self, value: PersistenceGateway | None) -> None:
        """永続化ストアを設定"""
        self._store = value

    @property
    def coordinator(self) -> TournamentCoordinator:
        """コーディネーターを取得"""
        if self._coordinator is None:
            self._coordinator = create_coordinator(get_settings(), self.store)
        return self._coordinator

    @coordinator.setter
    def coordinator(self, value: TournamentCoordinator | None) -> None:
        """コーディネーターを設定"""
        self._coordinator = value

    @property
    def broadcaster(self) -> EventBroadcaster:
        """ブロードキャスターを取得"""
        return self.coordinator.broadcaster


def get_app_state() -> AppState:
    """アプリケーション状態を取得（依存性注入用）"""
    return AppState.get_instance()


# 型エイリアス（FastAPIの Depends で使用）
AppStateDep = Annotated[AppState, Depends(get_app_state)]
