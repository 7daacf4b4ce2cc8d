"""
Variant Board Engine - Game Record Module

対局の棋譜（着手列・盤面スナップショット・注釈）をメモリ上に記録し、
任意の手数の盤面を再構築するリプレイ機能を提供します。

構成:
- GameRecorder: 対局ごとに1つ。受理された手を順に記録する
- ReplayController: 記録を手数単位で前後に再生するカーソル

フォーマット:
- to_dict() / to_json() でJSON互換の辞書・文字列に変換できます
"""

import asyncio
import json
import logging
import time
from dataclasses import asdict, dataclass, replace
from datetime import datetime
from typing import Any, Callable, Optional

from game_core import Board, GameRule, GameStatus, Move, Stone


logger = logging.getLogger(__name__)


# 最初の何手は毎手スナップショットを取るか
DENSE_SNAPSHOT_MOVES = 20


@dataclass(frozen=True)
class Annotation:
    """棋譜に付与する注釈"""
    timestamp: str            # ISO 8601形式
    text: str


class GameRecorder:
    """
    対局を記録するクラス

    対局開始時の盤面と先手の色を受け取り、以降はエンジンから受理された手を
    順に受け取ります。盤面のスナップショットは初期盤面、最初の20手の各手、
    以降は snapshot_stride 手ごとに保存し、board_at() で任意の手数の盤面を
    最寄りのスナップショットから再構築します。

    終局（end_game）後は凍結され、record_move() は RuntimeError になります。
    ゲームへの参照は持ちません。盤面の再構築に必要なルールは呼び出し側が渡します。

    使用例:
        recorder = GameRecorder(rule.create_board(), Stone.BLACK)
        stamped = recorder.record_move(move, board)
        board = recorder.board_at(5, rule)
    """

    def __init__(
        self,
        initial_board: Optional[Board] = None,
        first_stone: Stone = Stone.BLACK,
        snapshot_stride: int = 10,
        title: str = "",
        enabled: bool = True
    ):
        """
        Args:
            initial_board: 対局開始時の盤面（コピーして保持）
            first_stone: 先手の色
            snapshot_stride: 21手目以降のスナップショット間隔
            title: 対局タイトル
            enabled: 記録を有効にするか（探索用のコピーでは無効にする）
        """
        if snapshot_stride < 1:
            raise ValueError(f"snapshot_stride must be positive: {snapshot_stride}")

        self._enabled = enabled
        self._snapshot_stride = snapshot_stride
        self._title = title
        self._first_stone = first_stone
        self._initial_board = initial_board.copy() if initial_board is not None else None

        self._moves: list[Move] = []
        self._snapshots: dict[int, Board] = {}
        if self._initial_board is not None:
            self._snapshots[0] = self._initial_board.copy()

        self._annotations: list[Annotation] = []
        self._start_time: float = time.time()
        self._end_time: Optional[float] = None
        self._result: GameStatus = GameStatus.ONGOING

    # === プロパティ ===

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def title(self) -> str:
        return self._title

    @title.setter
    def title(self, value: str) -> None:
        self._title = value

    @property
    def snapshot_stride(self) -> int:
        return self._snapshot_stride

    @property
    def first_stone(self) -> Stone:
        """先手の色"""
        return self._first_stone

    @property
    def initial_board(self) -> Optional[Board]:
        """対局開始時の盤面（コピー）"""
        return self._initial_board.copy() if self._initial_board is not None else None

    @property
    def moves(self) -> list[Move]:
        """記録された手（コピー）"""
        return list(self._moves)

    @property
    def total_moves(self) -> int:
        return len(self._moves)

    @property
    def annotations(self) -> list[Annotation]:
        return list(self._annotations)

    @property
    def snapshot_indices(self) -> list[int]:
        """スナップショットが保存されている手数（昇順）"""
        return sorted(self._snapshots)

    @property
    def start_time(self) -> float:
        return self._start_time

    @property
    def end_time(self) -> Optional[float]:
        return self._end_time

    @property
    def is_finished(self) -> bool:
        """終局済み（凍結）かどうか"""
        return self._end_time is not None

    @property
    def result(self) -> GameStatus:
        return self._result

    @property
    def duration(self) -> float:
        """対局時間（秒）。対局中は現在時刻までの経過時間"""
        end = self._end_time if self._end_time is not None else time.time()
        return end - self._start_time

    # === 記録 ===

    def should_snapshot(self, move_number: int) -> bool:
        """move_number 手目の後にスナップショットを取るか"""
        return move_number < DENSE_SNAPSHOT_MOVES or move_number % self._snapshot_stride == 0

    def record_move(self, move: Move, board: Board) -> Move:
        """
        1手を記録

        Args:
            move: 受理された手
            board: その手を適用した後の盤面

        Returns:
            手数とタイムスタンプを付与した Move（記録が無効なら move そのもの）

        Raises:
            RuntimeError: 終局後に記録しようとした場合
        """
        if not self._enabled:
            return move
        if self.is_finished:
            raise RuntimeError("Cannot record a move after the game has ended")

        move_number = len(self._moves) + 1
        stamped = replace(
            move,
            move_number=move_number,
            timestamp=time.time() - self._start_time,
        )
        self._moves.append(stamped)

        if self.should_snapshot(move_number):
            self._snapshots[move_number] = board.copy()

        return stamped

    def add_annotation(self, text: str) -> None:
        """注釈を追加"""
        if not self._enabled:
            return
        self._annotations.append(
            Annotation(timestamp=datetime.now().isoformat(timespec="seconds"), text=text)
        )

    def end_game(self, result: GameStatus, summary: str = "") -> None:
        """
        対局終了を記録し、記録を凍結する

        Args:
            result: 終局結果
            summary: 結果の説明（注釈として残す）
        """
        if not self._enabled:
            return
        if summary:
            self.add_annotation(summary)
        self._result = result
        self._end_time = time.time()

    def retract_last(self) -> Optional[Move]:
        """
        最後の手を取り消す（Undo用）

        その手以降のスナップショットも破棄します。
        投了の取り消しでは凍結も解除されます。

        Returns:
            取り消した手（記録がなければNone）
        """
        if not self._enabled or not self._moves:
            return None

        move = self._moves.pop()
        remaining = len(self._moves)
        for index in [i for i in self._snapshots if i > remaining]:
            del self._snapshots[index]

        if self.is_finished:
            self._end_time = None
            self._result = GameStatus.ONGOING

        return move

    # === 再構築 ===

    def board_at(self, step: int, rule: GameRule) -> Board:
        """
        step 手目を適用した直後の盤面を再構築

        step 以下で最も近いスナップショットから、記録された手を
        ルールで再適用して求めます。パスと投了は盤面を変えません。

        Raises:
            ValueError: step が [0, total_moves] の範囲外、または初期盤面がない場合
        """
        if not 0 <= step <= len(self._moves):
            raise ValueError(f"step {step} out of range [0, {len(self._moves)}]")
        if not self._snapshots:
            raise ValueError("Recorder has no initial board")

        base = max(index for index in self._snapshots if index <= step)
        board = self._snapshots[base].copy()

        for move in self._moves[base:step]:
            if move.is_place:
                board.set_stone(move.row, move.col, move.stone)
                rule.apply_move_effects(board, move.row, move.col, move.stone)

        return board

    def copy(self) -> "GameRecorder":
        """記録のディープコピー"""
        new_recorder = GameRecorder.__new__(GameRecorder)
        new_recorder._enabled = self._enabled
        new_recorder._snapshot_stride = self._snapshot_stride
        new_recorder._title = self._title
        new_recorder._first_stone = self._first_stone
        new_recorder._initial_board = (
            self._initial_board.copy() if self._initial_board is not None else None
        )
        new_recorder._moves = list(self._moves)
        new_recorder._snapshots = {i: b.copy() for i, b in self._snapshots.items()}
        new_recorder._annotations = list(self._annotations)
        new_recorder._start_time = self._start_time
        new_recorder._end_time = self._end_time
        new_recorder._result = self._result
        return new_recorder

    # === 変換 ===

    def to_simple_text(self) -> str:
        """
        人間可読なテキスト形式に変換

        例:
        # Title: friendly match
        # Result: BLACK_WIN (9 moves)
        1. BLACK (7, 7)
        2. WHITE pass
        """
        lines = []
        if self._title:
            lines.append(f"# Title: {self._title}")
        lines.append(f"# Result: {self._result.name} ({len(self._moves)} moves)")
        lines.append("")

        for move in self._moves:
            if move.is_place:
                notation = f"({move.row}, {move.col})"
            elif move.is_pass:
                notation = "pass (auto)" if move.auto else "pass"
            else:
                notation = "resign"
            lines.append(f"{move.move_number}. {move.stone.name} {notation}")

        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """辞書形式に変換"""
        return {
            "enabled": self._enabled,
            "title": self._title,
            "snapshot_stride": self._snapshot_stride,
            "first_stone": self._first_stone.name,
            "initial_board": (
                self._initial_board.to_rows() if self._initial_board is not None else None
            ),
            "moves": [move.to_dict() for move in self._moves],
            "snapshots": {str(i): b.to_rows() for i, b in sorted(self._snapshots.items())},
            "annotations": [asdict(a) for a in self._annotations],
            "start_time": self._start_time,
            "end_time": self._end_time,
            "result": self._result.name,
        }

    def to_json(self, indent: int = 2) -> str:
        """JSON文字列に変換"""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameRecorder":
        """辞書から復元"""
        recorder = cls.__new__(cls)
        recorder._enabled = data.get("enabled", True)
        recorder._title = data.get("title", "")
        recorder._snapshot_stride = data.get("snapshot_stride", 10)
        recorder._first_stone = Stone[data.get("first_stone", "BLACK")]
        initial_rows = data.get("initial_board")
        recorder._initial_board = Board.from_rows(initial_rows) if initial_rows else None
        recorder._moves = [Move.from_dict(m) for m in data.get("moves", [])]
        recorder._snapshots = {
            int(i): Board.from_rows(rows) for i, rows in data.get("snapshots", {}).items()
        }
        recorder._annotations = [Annotation(**a) for a in data.get("annotations", [])]
        recorder._start_time = data.get("start_time", time.time())
        recorder._end_time = data.get("end_time")
        recorder._result = GameStatus[data.get("result", "ONGOING")]
        return recorder

    @classmethod
    def from_json(cls, json_str: str) -> "GameRecorder":
        """JSON文字列から復元"""
        return cls.from_dict(json.loads(json_str))


# 再生位置が変わったときのコールバック: (step, その手 or None)
StepCallback = Callable[[int, Optional[Move]], None]


class ReplayController:
    """
    棋譜の再生コントローラ

    current_step は「適用済みの手数」で、0 が初期盤面、total_steps が最終局面です。
    play() は asyncio で一定間隔ごとに1手ずつ進め、pause() / stop() か
    最終手に達すると止まります。
    """

    MIN_SPEED_MS = 100
    MAX_SPEED_MS = 10000

    def __init__(self, recorder: GameRecorder, rule: GameRule, playback_speed_ms: int = 1000):
        self._recorder = recorder
        self._rule = rule
        self._current_step = 0
        self._playback_speed_ms = self._clamp_speed(playback_speed_ms)
        self._playing = False
        self._listeners: list[StepCallback] = []

    @classmethod
    def _clamp_speed(cls, speed_ms: int) -> int:
        return max(cls.MIN_SPEED_MS, min(cls.MAX_SPEED_MS, speed_ms))

    # === プロパティ ===

    @property
    def current_step(self) -> int:
        return self._current_step

    @property
    def total_steps(self) -> int:
        return self._recorder.total_moves

    @property
    def is_playing(self) -> bool:
        return self._playing

    @property
    def playback_speed_ms(self) -> int:
        """1手あたりの再生間隔（ミリ秒、100〜10000に制限）"""
        return self._playback_speed_ms

    @playback_speed_ms.setter
    def playback_speed_ms(self, value: int) -> None:
        self._playback_speed_ms = self._clamp_speed(value)

    @property
    def current_move(self) -> Optional[Move]:
        """直前に適用された手（初期盤面ではNone）"""
        if self._current_step == 0:
            return None
        return self._recorder.moves[self._current_step - 1]

    @property
    def current_board(self) -> Board:
        """現在の再生位置の盤面"""
        return self._recorder.board_at(self._current_step, self._rule)

    @property
    def progress_text(self) -> str:
        return f"Move {self._current_step} / {self.total_steps}"

    @property
    def progress_percentage(self) -> float:
        """再生の進捗（0.0〜100.0）"""
        if self.total_steps == 0:
            return 0.0
        return self._current_step * 100.0 / self.total_steps

    # === リスナー ===

    def add_step_listener(self, callback: StepCallback) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_step_listener(self, callback: StepCallback) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self) -> None:
        move = self.current_move
        for callback in self._listeners:
            try:
                callback(self._current_step, move)
            except Exception:
                logger.exception("Error in replay step listener")

    # === ナビゲーション ===

    def go_to_step(self, step: int) -> int:
        """
        指定の手数へ移動（範囲外は [0, total_steps] に丸める）

        Returns:
            移動後の手数
        """
        step = max(0, min(step, self.total_steps))
        if step != self._current_step:
            self._current_step = step
            self._notify()
        return self._current_step

    def next_step(self) -> bool:
        """1手進める。最終手なら False"""
        if self._current_step >= self.total_steps:
            return False
        self.go_to_step(self._current_step + 1)
        return True

    def previous_step(self) -> bool:
        """1手戻す。初期盤面なら False"""
        if self._current_step <= 0:
            return False
        self.go_to_step(self._current_step - 1)
        return True

    def go_to_start(self) -> None:
        self.go_to_step(0)

    def go_to_end(self) -> None:
        self.go_to_step(self.total_steps)

    # === 自動再生 ===

    async def play(self) -> None:
        """
        自動再生

        playback_speed_ms ごとに1手進め、最終手または停止要求で終了します。
        """
        if self._playing:
            return

        if self._current_step >= self.total_steps:
            self.go_to_start()

        self._playing = True
        try:
            while self._playing and self._current_step < self.total_steps:
                await asyncio.sleep(self._playback_speed_ms / 1000)
                if not self._playing:
                    break
                self.next_step()
        finally:
            self._playing = False

    def pause(self) -> None:
        """自動再生を一時停止（位置はそのまま）"""
        self._playing = False

    def stop(self) -> None:
        """自動再生を停止して初期盤面に戻る"""
        self._playing = False
        self.go_to_start()
