"""IdeaForge CLI

コマンドラインインターフェース。
"""

import argparse
import logging
import sys


def main():
    """メインエントリーポイント"""
    parser = argparse.ArgumentParser(
        description="IdeaForge - 候補を多段ラウンドで評価・改善するトーナメントエンジン",
        prog="ideaforge",
    )
    parser.add_argument("--config", help="設定ファイルのパス")

    subparsers = parser.add_subparsers(dest="command", help="利用可能なコマンド")

    # server コマンド
    server_parser = subparsers.add_parser("server", help="APIサーバーを起動")
    server_parser.add_argument("--host", default=None, help="バインドするホスト")
    server_parser.add_argument("--port", type=int, default=None, help="ポート番号")
    server_parser.add_argument("--reload", action="store_true", help="ホットリロードを有効化")

    # init コマンド
    subparsers.add_parser("init", help="Vaultを初期化")

    # run コマンド
    run_parser = subparsers.add_parser("run", help="トーナメントを1件実行")
    run_parser.add_argument("--drug", required=True, help="薬剤名")
    run_parser.add_argument("--indication", required=True, help="適応症")
    run_parser.add_argument(
        "--goal",
        dest="goals",
        action="append",
        required=True,
        help="戦略目標ID（複数指定可）",
    )
    run_parser.add_argument(
        "--geo",
        dest="geography",
        action="append",
        required=True,
        help="対象地域コード（複数指定可）",
    )
    run_parser.add_argument("--lanes", type=int, default=None, help="レーン数")
    run_parser.add_argument("--max-rounds", type=int, default=None, help="最大ラウンド数")

    # status コマンド
    status_parser = subparsers.add_parser("status", help="トーナメントの状態を表示")
    status_parser.add_argument(
        "--tournament-id", help="トーナメントID（省略時は最新のトーナメント）"
    )

    args = parser.parse_args()

    from .core import reload_settings

    settings = reload_settings(args.config)
    configure_logging(settings.logging.level)

    if args.command == "server":
        run_server(args)
    elif args.command == "init":
        run_init(args)
    elif args.command == "run":
        run_tournament(args)
    elif args.command == "status":
        run_status(args)
    else:
        parser.print_help()
        sys.exit(1)


def configure_logging(level: str = "INFO") -> None:
    """ルートロガーを設定"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def run_server(args):
    """APIサーバーを起動"""
    import uvicorn

    from .core import get_settings

    settings = get_settings()
    uvicorn.run(
        "ideaforge.api:app",
        host=args.host or settings.server.host,
        port=args.port or settings.server.port,
        reload=args.reload,
    )


def run_init(args):
    """Vaultを初期化"""
    from .core import get_settings

    settings = get_settings()
    vault_path = settings.get_vault_path()
    (vault_path / "tournaments").mkdir(parents=True, exist_ok=True)

    print(f"✓ Vault ディレクトリを作成しました: {vault_path}")
    print(f"✓ レビュアー: {', '.join(settings.review.reviewer_ids)}")
    print("\nIdeaForge の準備ができました！")
    print("\n次のステップ:")
    print("  1. ideaforge server     # APIサーバーを起動")
    print("  2. ideaforge run --drug ... --indication ... --goal ... --geo ...")


def run_tournament(args):
    """トーナメントを1件実行し、ラウンド更新を表示"""
    import asyncio

    from .core import TournamentConfig, get_settings
    from .core.models import RoundUpdate
    from .tournament import EventBroadcaster, create_coordinator, create_store

    class _PrintSink:
        def send(self, update: RoundUpdate) -> None:
            print(f"--- ラウンド {update.round} ---")
            for lane in update.lanes:
                line = f"  レーン{lane.lane_id}: champion={lane.champion.score:.3f}"
                if lane.challenger is not None:
                    mark = "交代" if lane.replaced else "維持"
                    line += f" challenger={lane.challenger.score:.3f} ({mark})"
                print(line)

        def close(self) -> None:
            pass

    async def _run():
        settings = get_settings()
        config = TournamentConfig(
            drug_name=args.drug,
            indication=args.indication,
            strategic_goals=args.goals,
            geography=args.geography,
            lanes=args.lanes or settings.tournament.default_lanes,
            max_rounds=args.max_rounds or settings.tournament.default_max_rounds,
        )
        broadcaster = EventBroadcaster()
        coordinator = create_coordinator(settings, create_store(settings), broadcaster=broadcaster)

        tournament = await coordinator.create_tournament(config)
        print(f"🏆 トーナメント {tournament.id} を開始します")
        broadcaster.subscribe(tournament.id, _PrintSink())
        result = await coordinator.run_tournament(tournament.id)

        print("-" * 50)
        print(f"状態: {result.status}  最終ラウンド: {result.current_round}")
        if result.error:
            print(f"❌ エラー: {result.error}")
        return result

    result = asyncio.run(_run())
    if result.status != "completed":
        sys.exit(1)


def run_status(args):
    """トーナメント状態を表示"""
    import asyncio

    from .core import get_settings
    from .core.storage import JsonlStore

    settings = get_settings()
    store = JsonlStore(settings.get_vault_path())

    tournament_ids = store.list_tournament_ids()
    if not tournament_ids:
        print("トーナメントが見つかりません。")
        return

    async def _status():
        tournaments = await store.list_tournaments()
        if args.tournament_id:
            tournament = await store.get_tournament(args.tournament_id)
        else:
            tournament = tournaments[-1] if tournaments else None  # 最新のトーナメント
        if tournament is None:
            print(f"トーナメント {args.tournament_id} が見つかりません。")
            return

        champions = await store.get_champions(tournament.id)
        records = await store.list_round_records(tournament.id)

        print(f"\n=== Tournament: {tournament.id} ===")
        print(f"薬剤: {tournament.config.drug_name} / {tournament.config.indication}")
        print(f"状態: {tournament.status}")
        print(f"ラウンド: {tournament.current_round} / {tournament.config.max_rounds}")
        print(f"記録済みラウンド数: {len(records)}")
        if tournament.error:
            print(f"エラー: {tournament.error}")
        print("\nチャンピオン:")
        for champion in champions:
            print(f"  {champion.label}: {champion.overall_score:.3f}  {champion.title}")

    asyncio.run(_status())


if __name__ == "__main__":
    main()
