"""
Variant Board Engine - Game Record Tests

棋譜記録機能とリプレイのテスト
"""

import asyncio
import json
import random

import pytest
from unittest.mock import Mock

from game_core import Board, GameStatus, GomokuRule, GoRule, Move, ReversiRule, Stone
from game_engine import GameEngine
from game_record import GameRecorder, ReplayController


def fill_recorder(count: int, size: int = 15, stride: int = 10) -> tuple[GameRecorder, list[Board]]:
    """テスト用: 行優先で交互に石を置いた棋譜と、各手の後の盤面"""
    board = Board(size)
    recorder = GameRecorder(board, Stone.BLACK, snapshot_stride=stride)
    boards = []
    stone = Stone.BLACK
    for i in range(count):
        row, col = divmod(i, size)
        board.set_stone(row, col, stone)
        recorder.record_move(Move.place(stone, row, col), board)
        boards.append(board.copy())
        stone = stone.opponent()
    return recorder, boards


def play_random_game(engine: GameEngine, seed: int, max_moves: int) -> list[Board]:
    """テスト用: ランダムに対局を進め、受理された各手の後の盤面を返す"""
    boards: list[Board] = []
    engine.add_listener(
        lambda event: boards.append(engine.board) if event.event_type == "MOVE_MADE" else None
    )
    rng = random.Random(seed)
    for _ in range(max_moves):
        if engine.is_game_over:
            break
        move = engine.random_move(rng)
        if move is None:
            engine.pass_turn()
        else:
            engine.play_move(move.row, move.col)
    return boards


class TestGameRecorder:
    """GameRecorderのテスト"""

    def test_initial_state(self):
        """初期盤面が0手目として保存される"""
        board = ReversiRule().create_board()
        recorder = GameRecorder(board, Stone.BLACK, title="friendly match")
        assert recorder.total_moves == 0
        assert recorder.snapshot_indices == [0]
        assert recorder.initial_board == board
        assert recorder.first_stone == Stone.BLACK
        assert recorder.title == "friendly match"
        assert recorder.result == GameStatus.ONGOING
        assert not recorder.is_finished

    def test_initial_board_is_copied(self):
        """元の盤面を変更しても初期盤面は変わらない"""
        board = Board(9)
        recorder = GameRecorder(board)
        board.set_stone(0, 0, Stone.BLACK)
        assert recorder.initial_board == Board(9)

    def test_move_numbers(self):
        """手数は1から連番で付与される"""
        recorder, _ = fill_recorder(3)
        assert [m.move_number for m in recorder.moves] == [1, 2, 3]
        assert all(m.timestamp >= 0 for m in recorder.moves)

    def test_snapshot_policy(self):
        """最初の20手は毎手、以降は間隔ごとにスナップショット"""
        recorder, _ = fill_recorder(35, stride=10)
        assert recorder.snapshot_indices == list(range(0, 21)) + [30]

    def test_should_snapshot(self):
        """スナップショットを取る手数の判定"""
        recorder = GameRecorder(Board(9), snapshot_stride=4)
        assert recorder.should_snapshot(19)
        assert recorder.should_snapshot(24)
        assert not recorder.should_snapshot(21)

    def test_invalid_stride(self):
        """間隔が0以下ならValueError"""
        with pytest.raises(ValueError):
            GameRecorder(Board(9), snapshot_stride=0)

    def test_board_at_every_step(self):
        """任意の手数の盤面を再構築できる"""
        recorder, boards = fill_recorder(35, stride=7)
        rule = GomokuRule()
        assert recorder.board_at(0, rule) == Board(15)
        for k, expected in enumerate(boards, start=1):
            assert recorder.board_at(k, rule) == expected

    def test_board_at_out_of_range(self):
        """範囲外の手数はValueError"""
        recorder, _ = fill_recorder(3)
        with pytest.raises(ValueError):
            recorder.board_at(4, GomokuRule())
        with pytest.raises(ValueError):
            recorder.board_at(-1, GomokuRule())

    def test_frozen_after_end(self):
        """終局後の記録はRuntimeError"""
        recorder, _ = fill_recorder(3)
        recorder.end_game(GameStatus.BLACK_WIN, "Black wins")
        assert recorder.is_finished
        assert recorder.result == GameStatus.BLACK_WIN
        assert recorder.annotations[-1].text == "Black wins"
        with pytest.raises(RuntimeError):
            recorder.record_move(Move.place(Stone.WHITE, 5, 5), Board(15))

    def test_retract_last(self):
        """最後の手を取り消すと、その手のスナップショットも消える"""
        recorder, _ = fill_recorder(3)
        retracted = recorder.retract_last()
        assert retracted.move_number == 3
        assert recorder.total_moves == 2
        assert 3 not in recorder.snapshot_indices

    def test_retract_unfreezes(self):
        """取り消すと凍結が解除される"""
        recorder, _ = fill_recorder(2)
        recorder.end_game(GameStatus.WHITE_WIN)
        recorder.retract_last()
        assert not recorder.is_finished
        assert recorder.result == GameStatus.ONGOING

    def test_retract_empty(self):
        """記録がなければNone"""
        assert GameRecorder(Board(9)).retract_last() is None

    def test_disabled_recorder(self):
        """無効な記録は何も保存しない"""
        recorder = GameRecorder(enabled=False)
        move = Move.place(Stone.BLACK, 0, 0)
        assert recorder.record_move(move, Board(9)) is move
        recorder.add_annotation("ignored")
        recorder.end_game(GameStatus.DRAW)
        assert recorder.total_moves == 0
        assert recorder.annotations == []
        assert not recorder.is_finished

    def test_annotations(self):
        """注釈はタイムスタンプ付きで追加順に残る"""
        recorder = GameRecorder(Board(9))
        recorder.add_annotation("first")
        recorder.add_annotation("second")
        assert [a.text for a in recorder.annotations] == ["first", "second"]
        assert recorder.annotations[0].timestamp

    def test_copy_is_independent(self):
        """コピーへの記録は元に影響しない"""
        recorder, _ = fill_recorder(2)
        copied = recorder.copy()
        copied.record_move(Move.place(Stone.BLACK, 5, 5), Board(15))
        assert recorder.total_moves == 2
        assert copied.total_moves == 3

    def test_duration(self):
        """対局時間は0以上"""
        recorder, _ = fill_recorder(1)
        recorder.end_game(GameStatus.DRAW)
        assert recorder.duration >= 0
        assert recorder.end_time >= recorder.start_time

    def test_simple_text(self):
        """テキスト形式"""
        recorder, _ = fill_recorder(2)
        recorder.record_move(Move.create_pass(Stone.BLACK, auto=True), Board(15))
        recorder.title = "sample"
        text = recorder.to_simple_text()
        assert "# Title: sample" in text
        assert "1. BLACK (0, 0)" in text
        assert "2. WHITE (0, 1)" in text
        assert "3. BLACK pass (auto)" in text

    def test_json_round_trip(self):
        """JSONを経由しても内容が保たれる"""
        recorder, boards = fill_recorder(25, stride=3)
        recorder.add_annotation("note")
        recorder.end_game(GameStatus.DRAW, "Draw")
        data = json.loads(recorder.to_json())
        assert data["result"] == "DRAW"
        assert len(data["moves"]) == 25

        restored = GameRecorder.from_json(recorder.to_json())
        assert restored.moves == recorder.moves
        assert restored.snapshot_indices == recorder.snapshot_indices
        assert [a.text for a in restored.annotations] == ["note", "Draw"]
        assert restored.is_finished
        assert restored.board_at(25, GomokuRule()) == boards[-1]


class TestRecorderWithEngine:
    """エンジンの対局を棋譜から再構築できるか"""

    def test_go_round_trip(self):
        """囲碁（取りあり）の全手数で盤面が一致する"""
        engine = GameEngine(GoRule(board_size=9), snapshot_stride=5)
        boards = play_random_game(engine, seed=7, max_moves=120)
        recorder = engine.recorder
        assert recorder.total_moves == len(boards)
        assert recorder.board_at(0, engine.rule) == Board(9)
        for k, expected in enumerate(boards, start=1):
            assert recorder.board_at(k, engine.rule) == expected

    def test_reversi_round_trip(self):
        """リバーシ（反転・自動パスあり）の全手数で盤面が一致する"""
        engine = GameEngine(ReversiRule(), snapshot_stride=4)
        boards = play_random_game(engine, seed=21, max_moves=80)
        recorder = engine.recorder
        assert recorder.total_moves == len(boards)
        for k, expected in enumerate(boards, start=1):
            assert recorder.board_at(k, engine.rule) == expected
        assert recorder.board_at(recorder.total_moves, engine.rule) == engine.board

    def test_undo_keeps_recorder_in_sync(self):
        """Undoすると棋譜からも手が消える"""
        engine = GameEngine(GomokuRule())
        engine.play_move(7, 7)
        engine.play_move(7, 8)
        engine.undo()
        assert engine.recorder.total_moves == 1
        assert engine.recorder.board_at(1, engine.rule) == engine.board

    def test_recorder_frozen_after_game_over(self):
        """終局した対局の棋譜は凍結される"""
        engine = GameEngine(GoRule(board_size=9))
        engine.pass_turn()
        engine.pass_turn()
        assert engine.recorder.is_finished
        assert engine.recorder.result == GameStatus.WHITE_WIN


class TestReplayController:
    """ReplayControllerのテスト"""

    def _controller(self, count: int = 5) -> ReplayController:
        recorder, _ = fill_recorder(count)
        return ReplayController(recorder, GomokuRule())

    def test_initial_position(self):
        """初期位置は0手目"""
        controller = self._controller()
        assert controller.current_step == 0
        assert controller.total_steps == 5
        assert controller.current_move is None
        assert controller.current_board == Board(15)

    def test_next_and_previous(self):
        """1手ずつ進めて戻す"""
        controller = self._controller(2)
        assert controller.next_step() is True
        assert controller.current_move.move_number == 1
        assert controller.next_step() is True
        assert controller.next_step() is False
        assert controller.previous_step() is True
        assert controller.current_step == 1
        controller.go_to_start()
        assert controller.previous_step() is False

    def test_go_to_step_clamps(self):
        """範囲外の手数は丸められる"""
        controller = self._controller()
        assert controller.go_to_step(99) == 5
        assert controller.go_to_step(-3) == 0

    def test_go_to_end(self):
        """最終局面へ移動"""
        controller = self._controller()
        controller.go_to_end()
        assert controller.current_step == 5
        assert controller.current_board.get_stone(0, 4) == Stone.BLACK

    def test_progress(self):
        """進捗の表示"""
        controller = self._controller(4)
        controller.go_to_step(1)
        assert controller.progress_text == "Move 1 / 4"
        assert controller.progress_percentage == 25.0

    def test_progress_of_empty_record(self):
        """手がなければ0%"""
        controller = ReplayController(GameRecorder(Board(9)), GoRule(board_size=9))
        assert controller.progress_percentage == 0.0

    def test_speed_is_clamped(self):
        """再生速度は100〜10000ミリ秒"""
        controller = ReplayController(GameRecorder(Board(9)), GoRule(board_size=9), playback_speed_ms=10)
        assert controller.playback_speed_ms == 100
        controller.playback_speed_ms = 50000
        assert controller.playback_speed_ms == 10000

    def test_step_listener(self):
        """位置が変わったときだけ通知される"""
        controller = self._controller()
        callback = Mock()
        controller.add_step_listener(callback)
        controller.go_to_step(2)
        controller.go_to_step(2)
        assert callback.call_count == 1
        step, move = callback.call_args[0]
        assert step == 2
        assert move.move_number == 2

    def test_step_listener_error_is_contained(self):
        """リスナーの例外で再生は止まらない"""
        controller = self._controller()
        controller.add_step_listener(Mock(side_effect=RuntimeError("boom")))
        assert controller.next_step() is True
        assert controller.current_step == 1

    def test_remove_step_listener(self):
        """解除したリスナーは呼ばれない"""
        controller = self._controller()
        callback = Mock()
        controller.add_step_listener(callback)
        controller.remove_step_listener(callback)
        controller.next_step()
        callback.assert_not_called()

    @pytest.mark.asyncio
    async def test_play_to_end(self):
        """自動再生は最終手で止まる"""
        controller = ReplayController(fill_recorder(3)[0], GomokuRule(), playback_speed_ms=100)
        await controller.play()
        assert controller.current_step == 3
        assert controller.is_playing is False

    @pytest.mark.asyncio
    async def test_play_from_end_restarts(self):
        """最終手から再生すると最初から"""
        controller = ReplayController(fill_recorder(2)[0], GomokuRule(), playback_speed_ms=100)
        controller.go_to_end()
        steps = []
        controller.add_step_listener(lambda step, move: steps.append(step))
        await controller.play()
        assert steps == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_stop_during_play(self):
        """停止すると初期盤面に戻る"""
        controller = ReplayController(fill_recorder(10)[0], GomokuRule(), playback_speed_ms=100)
        task = asyncio.create_task(controller.play())
        await asyncio.sleep(0.25)
        controller.stop()
        await task
        assert controller.current_step == 0
        assert controller.is_playing is False

    @pytest.mark.asyncio
    async def test_pause_keeps_position(self):
        """一時停止は位置を保つ"""
        controller = ReplayController(fill_recorder(10)[0], GomokuRule(), playback_speed_ms=100)
        task = asyncio.create_task(controller.play())
        await asyncio.sleep(0.25)
        controller.pause()
        await task
        assert 0 < controller.current_step < 10
