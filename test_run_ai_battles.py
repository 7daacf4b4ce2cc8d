"""
Variant Board Engine - Battle Script Tests

run_ai_battles のテスト
"""

import json

import pytest

from game_core import GameStatus, GameType
from engine_config import EngineConfig
from players import AIController
from ai_strategies import GomokuRuleAI, RandomAI
from run_ai_battles import build_parser, create_ai_controller, load_config, run_battles


class TestArgumentParser:
    """引数解析のテスト"""

    def test_defaults(self):
        args = build_parser().parse_args([])
        assert args.game == "gomoku"
        assert args.black == "rule"
        assert args.white == "mcts"
        assert args.games == 3
        assert args.iterations is None
        assert args.seed is None
        assert args.game_timeout is None
        assert not args.show_record
        assert not args.verbose

    def test_short_options(self):
        args = build_parser().parse_args(["-g", "reversi", "-b", "advanced", "-w", "random", "-n", "5", "-s", "7"])
        assert args.game == "reversi"
        assert args.black == "advanced"
        assert args.white == "random"
        assert args.games == 5
        assert args.seed == 7

    def test_human_not_allowed(self):
        """対局者「none」はAIではないので選べない"""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--black", "none"])


class TestHelpers:
    """補助関数のテスト"""

    def test_create_ai_controller(self):
        controller = create_ai_controller(EngineConfig(), GameType.GOMOKU, "rule", "Black", seed=1)
        assert isinstance(controller, AIController)
        assert isinstance(controller.strategy, GomokuRuleAI)
        assert controller.name.startswith("Black (")

    def test_create_random_controller(self):
        controller = create_ai_controller(EngineConfig(), GameType.GO, "random", "White")
        assert isinstance(controller.strategy, RandomAI)

    def test_load_default_config(self):
        assert load_config(None) == EngineConfig()

    def test_load_config_file(self, tmp_path):
        path = tmp_path / "engine.json"
        path.write_text(json.dumps({"go.komi": 7.5, "gomoku.board_size": 9}), encoding="utf-8")
        config = load_config(str(path))
        assert config.go_komi == 7.5
        assert config.gomoku_board_size == 9


class TestRunBattles:
    """バッチ対戦のテスト"""

    @pytest.mark.asyncio
    async def test_reversi_batch(self, capsys):
        """全対局が集計され、結果が表示される"""
        args = build_parser().parse_args(["-g", "reversi", "-b", "random", "-w", "rule", "-n", "2", "-s", "3"])
        results = await run_battles(args)

        assert sum(results.values()) == 2
        assert results[GameStatus.ONGOING] == 0
        out = capsys.readouterr().out
        assert "Results Summary" in out
        assert "Progress: 2/2 games completed" in out

    @pytest.mark.asyncio
    async def test_seeded_batch_is_reproducible(self):
        argv = ["-g", "reversi", "-b", "random", "-w", "random", "-n", "2", "-s", "11"]
        first = await run_battles(build_parser().parse_args(argv))
        second = await run_battles(build_parser().parse_args(argv))
        assert first == second

    @pytest.mark.asyncio
    async def test_show_record(self, tmp_path, capsys):
        """--show-record で棋譜を表示"""
        path = tmp_path / "engine.json"
        path.write_text(json.dumps({"gomoku.board_size": 9}), encoding="utf-8")
        args = build_parser().parse_args(
            ["-b", "random", "-w", "random", "-n", "1", "-s", "5", "-c", str(path), "--show-record", "-v"]
        )
        await run_battles(args)

        out = capsys.readouterr().out
        assert "Game 1: Starting..." in out
        assert "Gomoku battle #1" in out

    @pytest.mark.asyncio
    async def test_game_timeout_counts_as_stopped(self, capsys):
        """制限時間を超えた対局は打ち切りとして数える"""
        args = build_parser().parse_args(
            ["-b", "mcts", "-w", "mcts", "-n", "1", "-i", "100000", "-s", "1", "--game-timeout", "0.05"]
        )
        results = await run_battles(args)

        assert results[GameStatus.ONGOING] == 1
        assert "Stopped (time limit): 1" in capsys.readouterr().out
