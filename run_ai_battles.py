"""
AI対戦バッチスクリプト

指定したゲームでAI同士を複数回対戦させ、勝敗を集計します。

使用例:
    # デフォルト設定（五目並べ、Rule vs MCTS を3回）
    python run_ai_battles.py

    # カスタム設定
    python run_ai_battles.py --game reversi --black advanced --white random --games 10

    # 設定ファイルと棋譜の表示
    python run_ai_battles.py --game go --config engine.json --show-record --verbose
"""

import argparse
import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from game_core import AIType, GameStatus, GameType
from engine_config import EngineConfig
from players import AIController, GameSession, GameSessionConfig


logger = logging.getLogger(__name__)

AI_CHOICES = [ai_type.name.lower() for ai_type in AIType if ai_type != AIType.NONE]


def create_ai_controller(
    config: EngineConfig,
    game_type: GameType,
    ai_name: str,
    label: str,
    seed: Optional[int] = None
) -> AIController:
    """AIコントローラを作成"""
    strategy = config.create_strategy(game_type, AIType.from_string(ai_name), seed=seed)
    if strategy is None:
        raise ValueError(f"{ai_name} is not an AI type")
    return AIController(strategy, f"{label} ({strategy.name})")


async def run_single_game(
    config: EngineConfig,
    game_type: GameType,
    black: AIController,
    white: AIController,
    game_number: int,
    game_timeout: Optional[float] = None,
    verbose: bool = False,
    show_record: bool = False
) -> GameStatus:
    """
    1対局を実行

    Returns:
        対局結果（制限時間を超えた場合は ONGOING）
    """
    engine = config.create_engine(game_type, title=f"{game_type.value} battle #{game_number}")
    session = GameSession(
        engine.rule,
        black,
        white,
        config=GameSessionConfig(game_timeout=game_timeout),
        engine=engine,
    )

    if verbose:
        print(f"  Game {game_number}: Starting...")

    try:
        result = await session.run_game()
    except asyncio.TimeoutError:
        logger.warning("Game %d exceeded %.1fs and was stopped", game_number, game_timeout)
        result = GameStatus.ONGOING

    if verbose:
        print(f"  Game {game_number}: {result.name} ({engine.move_count} moves)")
        print(f"    {engine.status_text()}")
    if show_record:
        print(engine.recorder.to_simple_text())

    return result


def load_config(path: Optional[str]) -> EngineConfig:
    """設定ファイル（JSON、ドット区切りキー）を読み込む。省略時はデフォルト"""
    if path is None:
        return EngineConfig()
    with Path(path).open(encoding="utf-8") as f:
        return EngineConfig.from_dict(json.load(f))


async def run_battles(args: argparse.Namespace) -> dict[GameStatus, int]:
    """
    複数対局を実行して結果を集計

    Returns:
        結果ごとの対局数（ONGOING は打ち切られた対局）
    """
    config = load_config(args.config)
    if args.iterations is not None:
        config = EngineConfig.from_dict({**config.to_dict(), "mcts.iterations": args.iterations})
    game_type = GameType.from_string(args.game)

    print("=" * 60)
    print("AI Battle Script")
    print("=" * 60)
    print(f"Game: {game_type.value}")
    print(f"Black: {args.black}")
    print(f"White: {args.white}")
    print(f"Games: {args.games}")
    print("=" * 60)

    results = {
        GameStatus.BLACK_WIN: 0,
        GameStatus.WHITE_WIN: 0,
        GameStatus.DRAW: 0,
        GameStatus.ONGOING: 0,
    }

    start_time = datetime.now()

    for i in range(1, args.games + 1):
        # コントローラは毎回作り直す（シードは対局ごとにずらす）
        seed = None if args.seed is None else args.seed + i * 2
        black = create_ai_controller(config, game_type, args.black, "Black", seed)
        white = create_ai_controller(
            config, game_type, args.white, "White", None if seed is None else seed + 1
        )

        result = await run_single_game(
            config, game_type, black, white, i,
            game_timeout=args.game_timeout,
            verbose=args.verbose,
            show_record=args.show_record,
        )
        results[result] += 1

        if not args.verbose:
            print(f"\rProgress: {i}/{args.games} games completed", end="", flush=True)

    if not args.verbose:
        print()

    elapsed = datetime.now() - start_time

    print("=" * 60)
    print("Results Summary")
    print("=" * 60)
    print(f"Black ({args.black}) wins: {results[GameStatus.BLACK_WIN]}")
    print(f"White ({args.white}) wins: {results[GameStatus.WHITE_WIN]}")
    print(f"Draws: {results[GameStatus.DRAW]}")
    if results[GameStatus.ONGOING]:
        print(f"Stopped (time limit): {results[GameStatus.ONGOING]}")
    print(f"Total time: {elapsed}")
    print("=" * 60)

    total = args.games
    if total > 0:
        black_rate = results[GameStatus.BLACK_WIN] / total * 100
        white_rate = results[GameStatus.WHITE_WIN] / total * 100
        draw_rate = results[GameStatus.DRAW] / total * 100
        print(f"Win rates: Black {black_rate:.1f}% / White {white_rate:.1f}% / Draw {draw_rate:.1f}%")

    return results


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run AI vs AI battles and summarize the results",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_ai_battles.py                                   # Gomoku: rule vs mcts, 3 games
  python run_ai_battles.py -g reversi -b advanced -w random  # Reversi
  python run_ai_battles.py -g go --game-timeout 30           # Stop long Go games
  python run_ai_battles.py --config engine.json --verbose    # Custom engine settings
        """
    )

    parser.add_argument(
        "--game", "-g",
        choices=[game_type.name.lower() for game_type in GameType],
        default="gomoku",
        help="Game to play (default: gomoku)"
    )
    parser.add_argument(
        "--black", "-b",
        choices=AI_CHOICES,
        default="rule",
        help="Black AI type (default: rule)"
    )
    parser.add_argument(
        "--white", "-w",
        choices=AI_CHOICES,
        default="mcts",
        help="White AI type (default: mcts)"
    )
    parser.add_argument(
        "--games", "-n",
        type=int,
        default=3,
        help="Number of games to play (default: 3)"
    )
    parser.add_argument(
        "--iterations", "-i",
        type=int,
        default=None,
        help="MCTS iterations (overrides the config file)"
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="Engine config JSON with dotted keys, e.g. {\"go.komi\": 7.5}"
    )
    parser.add_argument(
        "--seed", "-s",
        type=int,
        default=None,
        help="Base random seed for reproducible battles"
    )
    parser.add_argument(
        "--game-timeout",
        type=float,
        default=None,
        help="Stop a game after this many seconds"
    )
    parser.add_argument(
        "--show-record",
        action="store_true",
        help="Print each game record"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show detailed progress"
    )
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    asyncio.run(run_battles(args))


if __name__ == "__main__":
    main()
