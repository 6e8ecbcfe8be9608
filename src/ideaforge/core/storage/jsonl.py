"""JSONLジャーナル永続化ストア

Vault/tournaments/{tournament_id}/journal.jsonl に
upsertエントリを追記形式で保存し、起動時にリプレイして状態を復元する。
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import portalocker

from ..errors import PersistenceFailure
from .memory import InMemoryStore

logger = logging.getLogger(__name__)

JOURNAL_FILENAME = "journal.jsonl"


class JsonlStore(InMemoryStore):
    """PersistenceGateway のJSONL実装

    各変更はジャーナルに書き出してからメモリ状態に反映する。
    書き込みに失敗した変更はメモリにも反映されない。

    Attributes:
        vault_path: Vaultディレクトリのパス
    """

    def __init__(self, vault_path: Path | str, lock_timeout: float = 10.0):
        """
        Args:
            vault_path: Vaultディレクトリのパス
            lock_timeout: ファイルロック待ち秒数
        """
        super().__init__()
        self.vault_path = Path(vault_path)
        self._tournaments_path = self.vault_path / "tournaments"
        self._tournaments_path.mkdir(parents=True, exist_ok=True)
        self._lock_timeout = lock_timeout
        self._replay_all()

    def _get_journal_file(self, tournament_id: str) -> Path:
        """ジャーナルファイルパスを取得"""
        tournament_dir = self._tournaments_path / tournament_id
        tournament_dir.mkdir(parents=True, exist_ok=True)
        return tournament_dir / JOURNAL_FILENAME

    def _persist(self, tournament_id: str, kind: str, data: dict[str, Any]) -> None:
        line = json.dumps({"kind": kind, "data": data}, ensure_ascii=False)
        try:
            journal = self._get_journal_file(tournament_id)
            with portalocker.Lock(
                journal, mode="a", encoding="utf-8", timeout=self._lock_timeout
            ) as f:
                f.write(line + "\n")
        except (OSError, portalocker.LockException) as exc:
            raise PersistenceFailure(
                f"Failed to write {kind} for tournament {tournament_id}: {exc}"
            ) from exc

    def _replay_all(self) -> None:
        """全トーナメントのジャーナルをリプレイ"""
        for tournament_dir in sorted(self._tournaments_path.iterdir()):
            journal = tournament_dir / JOURNAL_FILENAME
            if tournament_dir.is_dir() and journal.exists():
                self._replay(journal)

    def _replay(self, journal: Path) -> None:
        with portalocker.Lock(
            journal, mode="r", encoding="utf-8", timeout=self._lock_timeout
        ) as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = json.loads(line)
                    self._apply(entry["kind"], entry["data"])
                except (ValueError, KeyError, TypeError):
                    # 途中で切れた行などは読み飛ばす
                    logger.warning("ジャーナル行をスキップ: %s:%d", journal, lineno)

    def list_tournament_ids(self) -> list[str]:
        """ジャーナルを持つトーナメントID一覧"""
        return [
            d.name
            for d in sorted(self._tournaments_path.iterdir())
            if d.is_dir() and (d / JOURNAL_FILENAME).exists()
        ]
