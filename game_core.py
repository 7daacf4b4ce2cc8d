"""
Variant Board Engine - Core Game Logic

このモジュールは、五目並べ・囲碁・リバーシの3種類の対局ゲームに共通する
データ型と、ゲームごとのルール実装を提供します。

アーキテクチャ:
- Board: 盤面状態のみを保持する純粋なデータクラス（N*N の一次元リスト）
- Move / Player: 着手とプレイヤーの記録
- GameRule (ABC): ルール定義の抽象基底クラス（Strategyパターンの基盤）
- GomokuRule / GoRule / ReversiRule: 各ゲームの具象ルール
- RuleRegistry: ルールのプラグイン登録

ゲーム進行（手番、履歴、イベント通知）は game_engine.GameEngine が担当します。
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Optional
import logging


logger = logging.getLogger(__name__)


class Stone(Enum):
    """盤面上の石を表す列挙型"""
    EMPTY = auto()
    BLACK = auto()
    WHITE = auto()

    def opponent(self) -> "Stone":
        """相手の石色を返す"""
        if self == Stone.BLACK:
            return Stone.WHITE
        elif self == Stone.WHITE:
            return Stone.BLACK
        return Stone.EMPTY

    @property
    def symbol(self) -> str:
        """盤面文字列化用の1文字表記"""
        if self == Stone.BLACK:
            return "B"
        elif self == Stone.WHITE:
            return "W"
        return "."

    @classmethod
    def from_symbol(cls, symbol: str) -> "Stone":
        """1文字表記から石を復元"""
        for stone in cls:
            if stone.symbol == symbol:
                return stone
        raise ValueError(f"Unknown stone symbol: {symbol!r}")


class GameStatus(Enum):
    """ゲームの状態を表す列挙型"""
    ONGOING = auto()      # 進行中
    BLACK_WIN = auto()    # 黒の勝利
    WHITE_WIN = auto()    # 白の勝利
    DRAW = auto()         # 引き分け

    @classmethod
    def win_for(cls, stone: Stone) -> "GameStatus":
        """指定した石色の勝利を表すステータス"""
        if stone == Stone.BLACK:
            return cls.BLACK_WIN
        if stone == Stone.WHITE:
            return cls.WHITE_WIN
        raise ValueError("EMPTY cannot win a game")

    @property
    def winner_stone(self) -> Optional[Stone]:
        """勝者の石色（引き分け・進行中はNone）"""
        if self == GameStatus.BLACK_WIN:
            return Stone.BLACK
        if self == GameStatus.WHITE_WIN:
            return Stone.WHITE
        return None


class GameType(Enum):
    """ゲームの種類"""
    GOMOKU = "Gomoku"
    GO = "Go"
    REVERSI = "Reversi"

    @classmethod
    def from_string(cls, text: str) -> "GameType":
        """名前（大文字小文字を区別しない）からゲーム種別を取得"""
        for game_type in cls:
            if game_type.name.lower() == text.lower() or game_type.value.lower() == text.lower():
                return game_type
        raise ValueError(f"Unknown game type: {text}")


class AIType(Enum):
    """各色に割り当てるAIの種類"""
    NONE = "None"           # 人間同士
    RANDOM = "Random"       # ランダム
    RULE = "Rule"           # ルールベース（ゲームごとのヒューリスティック）
    ADVANCED = "Advanced"   # 上級（ゲームごとに異なる）
    MCTS = "MCTS"           # モンテカルロ木探索

    @classmethod
    def from_string(cls, text: str) -> "AIType":
        for ai_type in cls:
            if ai_type.name.lower() == text.lower() or ai_type.value.lower() == text.lower():
                return ai_type
        raise ValueError(f"Unknown AI type: {text}")


@dataclass(frozen=True)
class Position:
    """盤面上の座標を表す不変データクラス（行, 列）"""
    row: int
    col: int


@dataclass
class Player:
    """
    対局者

    1局につき黒と白の2人が存在し、寿命は対局と同じです。
    """
    name: str
    color: Stone
    resigned: bool = False

    def resign(self) -> None:
        self.resigned = True

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "color": self.color.name, "resigned": self.resigned}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Player":
        return cls(
            name=data["name"],
            color=Stone[data["color"]],
            resigned=data.get("resigned", False),
        )


class MoveKind(Enum):
    """着手の種類"""
    PLACE = auto()    # 通常の着手
    PASS = auto()     # パス
    RESIGN = auto()   # 投了


@dataclass(frozen=True)
class Move:
    """
    1手の記録

    通常の着手・パス・投了のいずれかを表します。
    Undo用に、その手で変化したセル（囲碁の取り石、リバーシの反転石）と
    着手前の劫点・連続パス数を保持します。
    """
    kind: MoveKind
    stone: Stone                  # 着手したプレイヤーの色
    row: int = -1
    col: int = -1
    player_name: str = ""
    move_number: int = 0          # 1から開始
    timestamp: float = 0.0
    auto: bool = False            # 自動パス（リバーシ）
    affected: tuple[Position, ...] = ()
    prev_ko_point: Optional[Position] = None
    prev_passes: int = 0
    prev_turn: Optional[Stone] = None  # 投了時の手番（手番外の投了がありうる）

    @classmethod
    def place(cls, stone: Stone, row: int, col: int, **kwargs: Any) -> "Move":
        return cls(MoveKind.PLACE, stone, row, col, **kwargs)

    @classmethod
    def create_pass(cls, stone: Stone, **kwargs: Any) -> "Move":
        return cls(MoveKind.PASS, stone, **kwargs)

    @classmethod
    def create_resign(cls, stone: Stone, **kwargs: Any) -> "Move":
        return cls(MoveKind.RESIGN, stone, **kwargs)

    @property
    def is_place(self) -> bool:
        return self.kind == MoveKind.PLACE

    @property
    def is_pass(self) -> bool:
        return self.kind == MoveKind.PASS

    @property
    def is_resign(self) -> bool:
        return self.kind == MoveKind.RESIGN

    @property
    def position(self) -> Optional[Position]:
        """着手座標（パス・投了はNone）"""
        if not self.is_place:
            return None
        return Position(self.row, self.col)

    def describe(self) -> str:
        """人間可読な表記"""
        name = self.player_name or self.stone.name
        if self.is_pass:
            return f"{name} passes" + (" (auto)" if self.auto else "")
        if self.is_resign:
            return f"{name} resigns"
        return f"{name} plays ({self.row}, {self.col})"

    def to_dict(self) -> dict[str, Any]:
        """辞書形式に変換（JSON保存用）"""
        return {
            "kind": self.kind.name,
            "stone": self.stone.name,
            "row": self.row,
            "col": self.col,
            "player_name": self.player_name,
            "move_number": self.move_number,
            "timestamp": self.timestamp,
            "auto": self.auto,
            "affected": [[p.row, p.col] for p in self.affected],
            "prev_ko_point": (
                [self.prev_ko_point.row, self.prev_ko_point.col]
                if self.prev_ko_point else None
            ),
            "prev_passes": self.prev_passes,
            "prev_turn": self.prev_turn.name if self.prev_turn else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Move":
        """辞書から復元"""
        ko = data.get("prev_ko_point")
        prev_turn = data.get("prev_turn")
        return cls(
            kind=MoveKind[data["kind"]],
            stone=Stone[data["stone"]],
            row=data.get("row", -1),
            col=data.get("col", -1),
            player_name=data.get("player_name", ""),
            move_number=data.get("move_number", 0),
            timestamp=data.get("timestamp", 0.0),
            auto=data.get("auto", False),
            affected=tuple(Position(r, c) for r, c in data.get("affected", [])),
            prev_ko_point=Position(ko[0], ko[1]) if ko else None,
            prev_passes=data.get("prev_passes", 0),
            prev_turn=Stone[prev_turn] if prev_turn else None,
        )


@dataclass
class GameEvent:
    """
    ゲームイベントを表すデータクラス

    Observerに通知されるイベント情報を格納します。
    イベントタイプ:
    - GAME_STARTED: 対局開始（black, white）
    - MOVE_MADE: 着手・パスが受理された（move）
    - PLAYER_RESIGNED: 投了（player, winner）
    - GAME_ENDED: 対局終了（winner、引き分けならNone）
    - GAME_RESET: 盤面のリセット
    """
    event_type: str
    move: Optional[Move] = None
    player: Optional[Player] = None
    winner: Optional[Player] = None
    black: Optional[Player] = None
    white: Optional[Player] = None
    status: Optional[GameStatus] = None
    message: str = ""

    @property
    def position(self) -> Optional[Position]:
        return self.move.position if self.move else None

    @property
    def is_draw(self) -> bool:
        return self.event_type == "GAME_ENDED" and self.status == GameStatus.DRAW


# Observerのコールバック型定義
GameEventCallback = Callable[[GameEvent], None]


class Board:
    """
    盤面の状態を保持する純粋なデータクラス

    責務:
    - 石の配置状態の保持
    - 座標の境界チェック
    - 石の取得・設置

    セルは row * size + col で添字付けされた一次元リストで保持します。
    探索で大量にコピーされるため、copy() はリストの複製だけで済むようにしています。
    """

    def __init__(self, size: int) -> None:
        """
        盤面を初期化します

        Args:
            size: 盤面の一辺の長さ
        """
        if size < 1:
            raise ValueError(f"Board size must be positive: {size}")
        self._size = size
        self._cells: list[Stone] = [Stone.EMPTY] * (size * size)
        self._stone_count = 0

    @property
    def size(self) -> int:
        """盤面の一辺の長さ"""
        return self._size

    @property
    def stone_count(self) -> int:
        """盤上の石の数"""
        return self._stone_count

    def is_within_bounds(self, row: int, col: int) -> bool:
        """座標が盤面内かどうかを判定"""
        return 0 <= row < self._size and 0 <= col < self._size

    def get_stone(self, row: int, col: int) -> Stone:
        """
        指定座標の石を取得

        Returns:
            その座標の石（範囲外の場合もEMPTYを返す）
        """
        if not self.is_within_bounds(row, col):
            return Stone.EMPTY
        return self._cells[row * self._size + col]

    def set_stone(self, row: int, col: int, stone: Stone) -> bool:
        """
        指定座標に石を設置（内部用）

        このメソッドはルールチェックを行いません。
        外部からはGameEngine経由で石を置いてください。

        Returns:
            成功したらTrue、範囲外ならFalse
        """
        if not self.is_within_bounds(row, col):
            return False

        index = row * self._size + col
        old_stone = self._cells[index]
        self._cells[index] = stone

        if old_stone == Stone.EMPTY and stone != Stone.EMPTY:
            self._stone_count += 1
        elif old_stone != Stone.EMPTY and stone == Stone.EMPTY:
            self._stone_count -= 1

        return True

    def clear_stone(self, row: int, col: int) -> bool:
        """指定座標を空にする"""
        return self.set_stone(row, col, Stone.EMPTY)

    def is_empty(self, row: int, col: int) -> bool:
        """指定座標が空かどうかを判定"""
        return self.get_stone(row, col) == Stone.EMPTY

    def is_full(self) -> bool:
        """盤面が全て埋まっているかを判定"""
        return self._stone_count >= self._size * self._size

    def count(self, stone: Stone) -> int:
        """指定した色の石の数"""
        return self._cells.count(stone)

    def empty_positions(self) -> list[Position]:
        """空きマスの座標リスト（行優先順）"""
        size = self._size
        return [
            Position(index // size, index % size)
            for index, stone in enumerate(self._cells)
            if stone == Stone.EMPTY
        ]

    def copy(self) -> "Board":
        """盤面のディープコピーを作成"""
        new_board = Board.__new__(Board)
        new_board._size = self._size
        new_board._cells = list(self._cells)
        new_board._stone_count = self._stone_count
        return new_board

    def clear(self) -> None:
        """盤面をクリア"""
        self._cells = [Stone.EMPTY] * (self._size * self._size)
        self._stone_count = 0

    def to_rows(self) -> list[str]:
        """行ごとの文字列に変換（例: "..BW...."）"""
        size = self._size
        return [
            "".join(stone.symbol for stone in self._cells[r * size:(r + 1) * size])
            for r in range(size)
        ]

    @classmethod
    def from_rows(cls, rows: list[str]) -> "Board":
        """to_rows() の出力から盤面を復元"""
        board = cls(len(rows))
        for r, line in enumerate(rows):
            if len(line) != board.size:
                raise ValueError(f"Row {r} has length {len(line)}, expected {board.size}")
            for c, symbol in enumerate(line):
                stone = Stone.from_symbol(symbol)
                if stone != Stone.EMPTY:
                    board.set_stone(r, c, stone)
        return board

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Board):
            return NotImplemented
        return self._size == other._size and self._cells == other._cells

    def __str__(self) -> str:
        return "\n".join(self.to_rows())


# 4近傍（囲碁の連・呼吸点）
ORTHOGONAL_DIRECTIONS = ((0, 1), (1, 0), (0, -1), (-1, 0))

# 8方向（リバーシの反転走査）
ALL_DIRECTIONS = (
    (-1, -1), (-1, 0), (-1, 1),
    (0, -1),           (0, 1),
    (1, -1),  (1, 0),  (1, 1),
)

# 4つの軸（横、縦、右斜め下、右斜め上）
LINE_AXES = ((1, 0), (0, 1), (1, 1), (1, -1))


def count_line(board: Board, row: int, col: int, dr: int, dc: int, stone: Stone) -> int:
    """(row, col) を通る軸上で stone が連続する数（起点を含む）"""
    count = 1
    for sign in (1, -1):
        r, c = row + dr * sign, col + dc * sign
        while board.get_stone(r, c) == stone and board.is_within_bounds(r, c):
            count += 1
            r += dr * sign
            c += dc * sign
    return count


class GameRule(ABC):
    """
    ゲームルールの抽象基底クラス（Strategyパターンの基盤）

    GameEngine はこのインターフェースを通じて、合法手判定・着手の副作用・
    勝敗判定・得点計算をルールに委譲します。ルールは状態を持たないため、
    エンジンのコピー間で共有できます。
    """

    # パスを認めるか（五目並べは不可）
    allows_pass: bool = True

    # 着手後に相手の合法手がなければ自動でパスするか（リバーシ）
    auto_pass: bool = False

    @property
    @abstractmethod
    def game_type(self) -> GameType:
        """ゲームの種類"""
        pass

    @property
    @abstractmethod
    def board_size(self) -> int:
        """盤面の一辺の長さ"""
        pass

    @property
    @abstractmethod
    def rule_name(self) -> str:
        """ルール名を返す（UI表示用）"""
        pass

    @property
    def rule_id(self) -> str:
        """
        ルールの一意識別子

        RuleRegistryでの登録・取得、設定のシリアライズに使用します。
        """
        return self.__class__.__name__

    def create_board(self) -> Board:
        """このルール用の初期盤面を生成"""
        return Board(self.board_size)

    @abstractmethod
    def is_valid_move(
        self,
        board: Board,
        row: int,
        col: int,
        stone: Stone,
        ko_point: Optional[Position] = None
    ) -> bool:
        """
        指定の手が合法かどうかを判定

        Args:
            board: 現在の盤面（変更しないこと）
            row: 行
            col: 列
            stone: 置こうとしている石
            ko_point: 現在の劫点（囲碁のみ使用）

        Returns:
            合法手ならTrue
        """
        pass

    def apply_move_effects(
        self,
        board: Board,
        row: int,
        col: int,
        stone: Stone
    ) -> list[Position]:
        """
        石を置いた後の副作用を適用

        石は既に (row, col) に置かれています。

        Returns:
            色が変化したセルのリスト
            - 囲碁: 取られた石（空になったセル）
            - リバーシ: 反転した石
            デフォルト実装: 何もしない（空リストを返す）
        """
        return []

    def undo_move_effects(self, board: Board, move: Move) -> None:
        """
        apply_move_effects() で変化したセルを元に戻す

        取られた石も反転した石も、着手前は相手の色だったので
        相手の石に戻すだけで元の盤面になります。
        """
        previous = move.stone.opponent()
        for pos in move.affected:
            board.set_stone(pos.row, pos.col, previous)

    def ko_point_after(self, affected: list[Position]) -> Optional[Position]:
        """着手後の劫点（囲碁以外は常にNone）"""
        return None

    @abstractmethod
    def check_winner(self, board: Board, last_row: int, last_col: int, last_stone: Stone) -> GameStatus:
        """
        最後に置かれた石を起点に勝敗を判定

        囲碁とリバーシは着手だけでは終局しないため常にONGOINGを返し、
        終局はパスの連続（エンジン側）で判定します。
        """
        pass

    def score(self, board: Board) -> tuple[float, float]:
        """(黒の得点, 白の得点) を返す。デフォルトは石数"""
        return float(board.count(Stone.BLACK)), float(board.count(Stone.WHITE))

    def result_from_score(self, board: Board) -> GameStatus:
        """得点を比較して終局結果を決める"""
        black_score, white_score = self.score(board)
        if black_score > white_score:
            return GameStatus.BLACK_WIN
        if white_score > black_score:
            return GameStatus.WHITE_WIN
        return GameStatus.DRAW

    def get_valid_moves(
        self,
        board: Board,
        stone: Stone,
        ko_point: Optional[Position] = None
    ) -> list[Position]:
        """
        現在の盤面で合法な全ての手を返す（行優先順）
        """
        return [
            pos for pos in board.empty_positions()
            if self.is_valid_move(board, pos.row, pos.col, stone, ko_point)
        ]

    def has_valid_move(
        self,
        board: Board,
        stone: Stone,
        ko_point: Optional[Position] = None
    ) -> bool:
        """合法手が1つでもあるか"""
        return any(
            self.is_valid_move(board, pos.row, pos.col, stone, ko_point)
            for pos in board.empty_positions()
        )

    def start_annotations(self) -> list[str]:
        """対局開始時に棋譜へ書き込む注釈"""
        return [
            f"{self.game_type.value} game started",
            f"Board size: {self.board_size}x{self.board_size}",
        ]

    def get_rule_config(self) -> dict:
        """
        ルール設定をdict形式でシリアライズ

        保存・復元用。from_config()と対になります。
        """
        return {
            "rule_id": self.rule_id,
            "board_size": self.board_size,
        }

    @classmethod
    def from_config(cls, config: dict) -> "GameRule":
        """設定dictからルールインスタンスを復元"""
        return cls()


class GomokuRule(GameRule):
    """
    五目並べのルール

    - 盤面: 可変（デフォルト15x15）
    - 勝利条件: 縦・横・斜めに5つ以上連続で並べる（長連も勝ち）
    - パス不可、盤面が埋まれば引き分け
    """

    allows_pass = False

    # 探索用の小盤面（5x5など）も扱えるよう下限は勝利条件と同じにしています
    MIN_SIZE = 5
    MAX_SIZE = 19

    def __init__(self, board_size: int = 15, win_condition: int = 5) -> None:
        if not (self.MIN_SIZE <= board_size <= self.MAX_SIZE):
            raise ValueError(
                f"Gomoku board size must be in [{self.MIN_SIZE}, {self.MAX_SIZE}]: {board_size}"
            )
        self._board_size = board_size
        self._win_condition = win_condition

    @property
    def game_type(self) -> GameType:
        return GameType.GOMOKU

    @property
    def board_size(self) -> int:
        return self._board_size

    @property
    def win_condition(self) -> int:
        """勝利に必要な連続数"""
        return self._win_condition

    @property
    def rule_name(self) -> str:
        return f"Gomoku ({self._board_size}x{self._board_size})"

    def is_valid_move(
        self,
        board: Board,
        row: int,
        col: int,
        stone: Stone,
        ko_point: Optional[Position] = None
    ) -> bool:
        """
        合法手判定

        1. 座標が盤面内である
        2. その座標が空である
        """
        if not board.is_within_bounds(row, col):
            return False
        return board.is_empty(row, col)

    def check_winner(self, board: Board, last_row: int, last_col: int, last_stone: Stone) -> GameStatus:
        """
        勝敗判定

        最後に置かれた石を起点に4つの軸をチェックして
        5つ以上連続しているかを確認します。
        """
        if last_stone == Stone.EMPTY:
            return GameStatus.ONGOING

        for dr, dc in LINE_AXES:
            if count_line(board, last_row, last_col, dr, dc, last_stone) >= self._win_condition:
                return GameStatus.win_for(last_stone)

        # 盤面が埋まったら引き分け
        if board.is_full():
            return GameStatus.DRAW

        return GameStatus.ONGOING

    def get_rule_config(self) -> dict:
        return {
            "rule_id": self.rule_id,
            "board_size": self._board_size,
            "win_condition": self._win_condition,
        }

    @classmethod
    def from_config(cls, config: dict) -> "GomokuRule":
        return cls(
            board_size=config.get("board_size", 15),
            win_condition=config.get("win_condition", 5),
        )


def find_group(board: Board, row: int, col: int) -> set[Position]:
    """(row, col) の石を含む連（4連結した同色の石の集合）"""
    color = board.get_stone(row, col)
    group: set[Position] = set()
    stack = [Position(row, col)]

    while stack:
        pos = stack.pop()
        if pos in group:
            continue
        group.add(pos)

        for dr, dc in ORTHOGONAL_DIRECTIONS:
            nr, nc = pos.row + dr, pos.col + dc
            if board.is_within_bounds(nr, nc) and board.get_stone(nr, nc) == color:
                neighbor = Position(nr, nc)
                if neighbor not in group:
                    stack.append(neighbor)

    return group


def liberties_of(board: Board, group: set[Position]) -> set[Position]:
    """連の呼吸点（連に4近傍で接する空点）"""
    liberties: set[Position] = set()
    for pos in group:
        for dr, dc in ORTHOGONAL_DIRECTIONS:
            nr, nc = pos.row + dr, pos.col + dc
            if board.is_within_bounds(nr, nc) and board.is_empty(nr, nc):
                liberties.add(Position(nr, nc))
    return liberties


def has_liberty(board: Board, group: set[Position]) -> bool:
    """連に呼吸点が1つでもあるか（全数えより速い）"""
    for pos in group:
        for dr, dc in ORTHOGONAL_DIRECTIONS:
            nr, nc = pos.row + dr, pos.col + dc
            if board.is_within_bounds(nr, nc) and board.is_empty(nr, nc):
                return True
    return False


class GoRule(GameRule):
    """
    囲碁のルール（簡易版）

    - 盤面: 可変（デフォルト19x19）
    - 呼吸点のなくなった相手の連を取る
    - 自殺手禁止、単劫の即時取り返し禁止
    - 2連続パスで終局し、簡易地計算 + コミで勝敗を決める
    """

    MIN_SIZE = 5
    MAX_SIZE = 19

    def __init__(self, board_size: int = 19, komi: float = 6.5) -> None:
        if not (self.MIN_SIZE <= board_size <= self.MAX_SIZE):
            raise ValueError(
                f"Go board size must be in [{self.MIN_SIZE}, {self.MAX_SIZE}]: {board_size}"
            )
        self._board_size = board_size
        self._komi = komi

    @property
    def game_type(self) -> GameType:
        return GameType.GO

    @property
    def board_size(self) -> int:
        return self._board_size

    @property
    def komi(self) -> float:
        """白に加算するコミ"""
        return self._komi

    @property
    def rule_name(self) -> str:
        return f"Go ({self._board_size}x{self._board_size}, komi {self._komi})"

    def _remove_dead_neighbors(self, board: Board, row: int, col: int, stone: Stone) -> list[Position]:
        """(row, col) に接する相手の連のうち、呼吸点のないものを取り除く"""
        captured: list[Position] = []
        opponent = stone.opponent()

        for dr, dc in ORTHOGONAL_DIRECTIONS:
            nr, nc = row + dr, col + dc
            if not board.is_within_bounds(nr, nc) or board.get_stone(nr, nc) != opponent:
                continue

            group = find_group(board, nr, nc)
            if not has_liberty(board, group):
                for pos in group:
                    board.clear_stone(pos.row, pos.col)
                    captured.append(pos)

        return captured

    def is_valid_move(
        self,
        board: Board,
        row: int,
        col: int,
        stone: Stone,
        ko_point: Optional[Position] = None
    ) -> bool:
        """
        合法手判定

        1. 盤面内の空点である
        2. 劫点ではない
        3. 作業用の盤面に置き、呼吸点のなくなった相手の連を取った後、
           自分の連に呼吸点が残る（自殺手ではない）
        """
        if stone == Stone.EMPTY or not board.is_within_bounds(row, col):
            return False
        if not board.is_empty(row, col):
            return False
        if ko_point is not None and ko_point.row == row and ko_point.col == col:
            return False

        # 隣に空点があれば取りの有無にかかわらず呼吸点が残る
        for dr, dc in ORTHOGONAL_DIRECTIONS:
            nr, nc = row + dr, col + dc
            if board.is_within_bounds(nr, nc) and board.is_empty(nr, nc):
                return True

        test_board = board.copy()
        test_board.set_stone(row, col, stone)
        self._remove_dead_neighbors(test_board, row, col, stone)
        return has_liberty(test_board, find_group(test_board, row, col))

    def apply_move_effects(self, board: Board, row: int, col: int, stone: Stone) -> list[Position]:
        """取られた石を盤面から取り除き、その座標を返す"""
        return self._remove_dead_neighbors(board, row, col, stone)

    def ko_point_after(self, affected: list[Position]) -> Optional[Position]:
        """ちょうど1子を取った場合、そのセルが次の1手の劫点になる"""
        if len(affected) == 1:
            return affected[0]
        return None

    def check_winner(self, board: Board, last_row: int, last_col: int, last_stone: Stone) -> GameStatus:
        return GameStatus.ONGOING

    def territory_owner(self, board: Board, row: int, col: int) -> Stone:
        """
        空点の帰属（簡易ルール）

        4近傍の石がすべて同じ色ならその色の地、
        両方の色が接している、または石が接していない場合は中立（EMPTY）。
        """
        colors: set[Stone] = set()
        for dr, dc in ORTHOGONAL_DIRECTIONS:
            nr, nc = row + dr, col + dc
            if board.is_within_bounds(nr, nc):
                neighbor = board.get_stone(nr, nc)
                if neighbor != Stone.EMPTY:
                    colors.add(neighbor)
        if len(colors) == 1:
            return colors.pop()
        return Stone.EMPTY

    def score(self, board: Board) -> tuple[float, float]:
        """石の数 + 簡易地 を数え、白にコミを加える"""
        black_score = 0.0
        white_score = self._komi

        for row in range(board.size):
            for col in range(board.size):
                stone = board.get_stone(row, col)
                if stone == Stone.EMPTY:
                    stone = self.territory_owner(board, row, col)
                if stone == Stone.BLACK:
                    black_score += 1
                elif stone == Stone.WHITE:
                    white_score += 1

        return black_score, white_score

    def start_annotations(self) -> list[str]:
        return super().start_annotations() + [f"Komi: {self._komi}"]

    def get_rule_config(self) -> dict:
        return {
            "rule_id": self.rule_id,
            "board_size": self._board_size,
            "komi": self._komi,
        }

    @classmethod
    def from_config(cls, config: dict) -> "GoRule":
        return cls(
            board_size=config.get("board_size", 19),
            komi=config.get("komi", 6.5),
        )


class ReversiRule(GameRule):
    """
    リバーシ（オセロ）のルール

    - 盤面: 8x8固定、中央4マスに初期配置、黒先手
    - 相手の石を1つ以上挟める場所にのみ置ける
    - 置けない場合は自動パス、双方置けなければ終局
    - 石数の多い方が勝ち
    """

    auto_pass = True

    BOARD_SIZE = 8

    @property
    def game_type(self) -> GameType:
        return GameType.REVERSI

    @property
    def board_size(self) -> int:
        return self.BOARD_SIZE

    @property
    def rule_name(self) -> str:
        return "Reversi (8x8)"

    def create_board(self) -> Board:
        """中央4マスに石を配置した初期盤面"""
        board = Board(self.BOARD_SIZE)
        center = self.BOARD_SIZE // 2 - 1
        board.set_stone(center, center, Stone.WHITE)
        board.set_stone(center, center + 1, Stone.BLACK)
        board.set_stone(center + 1, center, Stone.BLACK)
        board.set_stone(center + 1, center + 1, Stone.WHITE)
        return board

    def find_flips(self, board: Board, row: int, col: int, stone: Stone) -> list[Position]:
        """
        (row, col) に stone を置いたときに反転する石

        8方向それぞれについて、相手の石が続いた先に自分の石があれば
        その間の相手の石が反転対象になります。
        """
        opponent = stone.opponent()
        flips: list[Position] = []

        for dr, dc in ALL_DIRECTIONS:
            run: list[Position] = []
            r, c = row + dr, col + dc
            while board.is_within_bounds(r, c) and board.get_stone(r, c) == opponent:
                run.append(Position(r, c))
                r += dr
                c += dc
            if run and board.is_within_bounds(r, c) and board.get_stone(r, c) == stone:
                flips.extend(run)

        return flips

    def is_valid_move(
        self,
        board: Board,
        row: int,
        col: int,
        stone: Stone,
        ko_point: Optional[Position] = None
    ) -> bool:
        """合法手判定: 空きマスで、かつ1つ以上反転できる"""
        if stone == Stone.EMPTY or not board.is_within_bounds(row, col):
            return False
        if not board.is_empty(row, col):
            return False

        opponent = stone.opponent()
        for dr, dc in ALL_DIRECTIONS:
            r, c = row + dr, col + dc
            found_opponent = False
            while board.is_within_bounds(r, c) and board.get_stone(r, c) == opponent:
                found_opponent = True
                r += dr
                c += dc
            if found_opponent and board.is_within_bounds(r, c) and board.get_stone(r, c) == stone:
                return True

        return False

    def apply_move_effects(self, board: Board, row: int, col: int, stone: Stone) -> list[Position]:
        """挟んだ石を反転し、反転した座標を返す"""
        flips = self.find_flips(board, row, col, stone)
        for pos in flips:
            board.set_stone(pos.row, pos.col, stone)
        return flips

    def check_winner(self, board: Board, last_row: int, last_col: int, last_stone: Stone) -> GameStatus:
        # 盤面が埋まれば双方とも合法手がなくなり、エンジン側で終局する
        return GameStatus.ONGOING

    def start_annotations(self) -> list[str]:
        return super().start_annotations() + ["Initial layout: four stones in the center"]

    def get_rule_config(self) -> dict:
        return {
            "rule_id": self.rule_id,
            "board_size": self.BOARD_SIZE,
        }

    @classmethod
    def from_config(cls, config: dict) -> "ReversiRule":
        return cls()


class RuleRegistry:
    """
    ゲームルールのレジストリ

    ルールをプラグインのように登録・取得できます。
    rule_idをキーとして管理します。

    使用例:
        rule = RuleRegistry.create("GoRule", board_size=9)
        rule = RuleRegistry.create_from_config({"rule_id": "GomokuRule", "board_size": 15})
        rule = RuleRegistry.for_game_type(GameType.REVERSI)
    """

    _registry: dict[str, type[GameRule]] = {}

    @classmethod
    def register(cls, rule_class: type[GameRule]) -> None:
        """
        ルールクラスを登録

        Raises:
            ValueError: 同じrule_idが既に登録されている場合
            TypeError: GameRuleのサブクラスでない場合
        """
        if not isinstance(rule_class, type) or not issubclass(rule_class, GameRule):
            raise TypeError(f"{rule_class} is not a subclass of GameRule")

        instance = rule_class()
        rule_id = instance.rule_id

        if rule_id in cls._registry:
            raise ValueError(f"Rule '{rule_id}' is already registered")

        cls._registry[rule_id] = rule_class

    @classmethod
    def get(cls, rule_id: str) -> type[GameRule]:
        """
        rule_idからルールクラスを取得

        Raises:
            KeyError: 登録されていないrule_idの場合
        """
        if rule_id not in cls._registry:
            raise KeyError(f"Rule '{rule_id}' is not registered")

        return cls._registry[rule_id]

    @classmethod
    def create(cls, rule_id: str, **kwargs) -> GameRule:
        """rule_idからルールインスタンスを作成"""
        rule_class = cls.get(rule_id)
        return rule_class(**kwargs)

    @classmethod
    def create_from_config(cls, config: dict) -> GameRule:
        """
        設定dictからルールインスタンスを復元

        Raises:
            KeyError: rule_idが登録されていない、またはconfigにrule_idがない場合
        """
        if "rule_id" not in config:
            raise KeyError("config must contain 'rule_id'")

        rule_class = cls.get(config["rule_id"])
        return rule_class.from_config(config)

    @classmethod
    def for_game_type(cls, game_type: GameType, **kwargs) -> GameRule:
        """ゲーム種別に対応する登録済みルールを作成"""
        for rule_class in cls._registry.values():
            if rule_class().game_type == game_type:
                return rule_class(**kwargs)
        raise KeyError(f"No rule registered for {game_type.value}")

    @classmethod
    def list_available(cls) -> list[str]:
        """登録されているrule_idの一覧（アルファベット順）"""
        return sorted(cls._registry.keys())

    @classmethod
    def is_registered(cls, rule_id: str) -> bool:
        """rule_idが登録されているかチェック"""
        return rule_id in cls._registry

    @classmethod
    def unregister(cls, rule_id: str) -> bool:
        """ルールの登録を解除（主にテスト用）"""
        if rule_id in cls._registry:
            del cls._registry[rule_id]
            return True
        return False


# === デフォルトルールの登録 ===
RuleRegistry.register(GomokuRule)
RuleRegistry.register(GoRule)
RuleRegistry.register(ReversiRule)
