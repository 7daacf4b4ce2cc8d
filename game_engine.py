"""
Variant Board Engine - Game Engine Module

GameEngine は盤面・手番・履歴・棋譜を束ねるファサードで、
ゲームごとの違いは全て GameRule に委譲します。

外部（UI、AI、対局セッション）はこのクラスのメソッドのみを通じて対局を操作します。
不正な入力は例外ではなく False で拒否し、その場合は状態を一切変更しません。
"""

import json
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Optional

from game_core import (
    AIType,
    Board,
    GameEvent,
    GameEventCallback,
    GameRule,
    GameStatus,
    GameType,
    Move,
    MoveKind,
    Player,
    Position,
    RuleRegistry,
    Stone,
)
from game_record import GameRecorder


logger = logging.getLogger(__name__)


@dataclass
class GameSnapshot:
    """
    対局状態の保存データ

    GameEngine.snapshot() で作成し、restore() で復元します。
    盤面・プレイヤー・履歴・棋譜は全てコピーで保持するため、
    元の対局を進めても内容は変わりません。
    """
    rule_config: dict
    board: Board
    black: Player
    white: Player
    current_turn: Stone
    status: GameStatus
    move_history: list[Move]
    consecutive_passes: int
    ko_point: Optional[Position]
    last_affected: list[Position]
    recorder: GameRecorder
    agents: dict[Stone, AIType] = field(default_factory=dict)

    def copy(self) -> "GameSnapshot":
        """独立したコピーを作成"""
        return GameSnapshot(
            rule_config=dict(self.rule_config),
            board=self.board.copy(),
            black=Player(self.black.name, self.black.color, self.black.resigned),
            white=Player(self.white.name, self.white.color, self.white.resigned),
            current_turn=self.current_turn,
            status=self.status,
            move_history=list(self.move_history),
            consecutive_passes=self.consecutive_passes,
            ko_point=self.ko_point,
            last_affected=list(self.last_affected),
            recorder=self.recorder.copy(),
            agents=dict(self.agents),
        )

    def to_dict(self) -> dict[str, Any]:
        """辞書形式に変換"""
        return {
            "rule": dict(self.rule_config),
            "board": self.board.to_rows(),
            "black": self.black.to_dict(),
            "white": self.white.to_dict(),
            "current_turn": self.current_turn.name,
            "status": self.status.name,
            "moves": [move.to_dict() for move in self.move_history],
            "consecutive_passes": self.consecutive_passes,
            "ko_point": [self.ko_point.row, self.ko_point.col] if self.ko_point else None,
            "last_affected": [[p.row, p.col] for p in self.last_affected],
            "recorder": self.recorder.to_dict(),
            "agents": {stone.name: ai_type.name for stone, ai_type in self.agents.items()},
        }

    def to_json(self, indent: int = 2) -> str:
        """JSON文字列に変換"""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameSnapshot":
        """辞書から復元"""
        ko = data.get("ko_point")
        return cls(
            rule_config=dict(data["rule"]),
            board=Board.from_rows(data["board"]),
            black=Player.from_dict(data["black"]),
            white=Player.from_dict(data["white"]),
            current_turn=Stone[data["current_turn"]],
            status=GameStatus[data["status"]],
            move_history=[Move.from_dict(m) for m in data.get("moves", [])],
            consecutive_passes=data.get("consecutive_passes", 0),
            ko_point=Position(ko[0], ko[1]) if ko else None,
            last_affected=[Position(r, c) for r, c in data.get("last_affected", [])],
            recorder=GameRecorder.from_dict(data["recorder"]),
            agents={Stone[k]: AIType[v] for k, v in data.get("agents", {}).items()},
        )

    @classmethod
    def from_json(cls, json_str: str) -> "GameSnapshot":
        """JSON文字列から復元"""
        return cls.from_dict(json.loads(json_str))


class GameEngine:
    """
    ゲーム進行を管理するコントローラ/ファサードクラス

    責務:
    - 手番管理（黒先手、交互に着手）
    - ルールと盤面の連携（合法手判定・取り石・反転・勝敗）
    - パス・投了・Undo
    - 棋譜の記録とリプレイモード
    - Observerパターンによる状態変化の通知

    リプレイモード中は play_move / pass_turn / resign / undo は全て False を返します。
    """

    def __init__(
        self,
        rule: GameRule,
        black: Optional[Player] = None,
        white: Optional[Player] = None,
        snapshot_stride: int = 10,
        title: str = "",
        record: bool = True
    ) -> None:
        """
        ゲームエンジンを初期化

        Args:
            rule: 使用するゲームルール
            black: 黒番のプレイヤー（省略時は "Black"）
            white: 白番のプレイヤー（省略時は "White"）
            snapshot_stride: 棋譜のスナップショット間隔
            title: 棋譜のタイトル
            record: 棋譜を記録するか
        """
        self._rule = rule
        self._board = rule.create_board()
        self._replay_mode = False
        self._players: dict[Stone, Player] = {}
        self.set_players(
            black or Player("Black", Stone.BLACK),
            white or Player("White", Stone.WHITE),
        )
        self._current_turn = Stone.BLACK  # 黒先手
        self._status = GameStatus.ONGOING
        self._listeners: list[GameEventCallback] = []
        self._move_history: list[Move] = []
        self._consecutive_passes = 0
        self._ko_point: Optional[Position] = None
        self._last_affected: list[Position] = []
        self._agents: dict[Stone, AIType] = {Stone.BLACK: AIType.NONE, Stone.WHITE: AIType.NONE}

        self._replay_step = 0
        self._live_state: Optional[GameSnapshot] = None
        self._suppress_auto_pass = False

        self._recorder = GameRecorder(
            self._board, self._current_turn,
            snapshot_stride=snapshot_stride, title=title, enabled=record,
        )
        for text in rule.start_annotations():
            self._recorder.add_annotation(text)

    # === プロパティ ===

    @property
    def rule(self) -> GameRule:
        """使用中のルール"""
        return self._rule

    @property
    def game_type(self) -> GameType:
        return self._rule.game_type

    @property
    def board(self) -> Board:
        """現在の盤面（読み取り専用のコピーを返す）"""
        return self._board.copy()

    @property
    def board_size(self) -> int:
        return self._board.size

    @property
    def current_turn(self) -> Stone:
        """現在の手番の色"""
        return self._current_turn

    @property
    def current_player(self) -> Player:
        """現在の手番のプレイヤー"""
        return self._players[self._current_turn]

    @property
    def black_player(self) -> Player:
        return self._players[Stone.BLACK]

    @property
    def white_player(self) -> Player:
        return self._players[Stone.WHITE]

    @property
    def status(self) -> GameStatus:
        """ゲームの状態"""
        return self._status

    @property
    def is_game_over(self) -> bool:
        """ゲームが終了しているか"""
        return self._status != GameStatus.ONGOING

    @property
    def winner(self) -> Optional[Player]:
        """勝者（進行中・引き分けはNone）"""
        stone = self._status.winner_stone
        return self._players[stone] if stone else None

    @property
    def move_history(self) -> list[Move]:
        """着手履歴のコピー"""
        return list(self._move_history)

    @property
    def move_count(self) -> int:
        return len(self._move_history)

    @property
    def consecutive_passes(self) -> int:
        return self._consecutive_passes

    @property
    def ko_point(self) -> Optional[Position]:
        """囲碁の劫点（次の1手だけ着手禁止のセル）"""
        return self._ko_point

    @property
    def last_affected(self) -> list[Position]:
        """直前の着手で変化したセル（囲碁: 取り石、リバーシ: 反転石）"""
        return list(self._last_affected)

    @property
    def recorder(self) -> GameRecorder:
        return self._recorder

    @property
    def is_replay_mode(self) -> bool:
        return self._replay_mode

    @property
    def replay_step(self) -> int:
        return self._replay_step

    def get_stone(self, row: int, col: int) -> Stone:
        """盤面をコピーせずに1セルを参照"""
        return self._board.get_stone(row, col)

    def set_players(self, black: Player, white: Player) -> bool:
        """
        対局者を設定

        Returns:
            設定できたらTrue（リプレイ中はFalse）

        Raises:
            ValueError: 色の割り当てが正しくない場合
        """
        if black.color != Stone.BLACK or white.color != Stone.WHITE:
            raise ValueError("black must have color BLACK and white must have color WHITE")
        if self._replay_mode:
            return False
        self._players = {Stone.BLACK: black, Stone.WHITE: white}
        return True

    # === Observer ===

    def add_listener(self, callback: GameEventCallback) -> None:
        """
        イベントリスナーを登録（Observerパターン）

        リスナーは受理された操作ごとに同期的に、発生順で呼ばれます。
        リスナーの中からエンジンを操作してはいけません。
        """
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: GameEventCallback) -> bool:
        """
        イベントリスナーを解除

        Returns:
            解除できたらTrue、存在しなければFalse
        """
        if callback in self._listeners:
            self._listeners.remove(callback)
            return True
        return False

    def _notify_listeners(self, event: GameEvent) -> None:
        """全リスナーにイベントを通知"""
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                # リスナーの例外がゲームロジックに影響しないようにする
                logger.exception("Listener error while handling %s", event.event_type)

    def start(self) -> bool:
        """
        対局開始を通知（GAME_STARTED）

        Returns:
            通知したらTrue（リプレイ中は何もせずFalse）
        """
        if self._replay_mode:
            return False
        black, white = self.black_player, self.white_player
        self._recorder.add_annotation(f"Black: {black.name}, White: {white.name}")
        self._notify_listeners(GameEvent(
            event_type="GAME_STARTED",
            black=black,
            white=white,
            status=self._status,
            message=f"{black.name} (Black) vs {white.name} (White)",
        ))
        return True

    # === 合法手 ===

    def is_valid_move(self, row: int, col: int) -> bool:
        """現在の手番で (row, col) に打てるか"""
        if self.is_game_over or self._replay_mode:
            return False
        return self._rule.is_valid_move(self._board, row, col, self._current_turn, self._ko_point)

    def get_valid_moves(self) -> list[Position]:
        """現在の手番の合法手（行優先順）"""
        if self.is_game_over or self._replay_mode:
            return []
        return self._rule.get_valid_moves(self._board, self._current_turn, self._ko_point)

    def has_valid_move(self) -> bool:
        if self.is_game_over or self._replay_mode:
            return False
        return self._rule.has_valid_move(self._board, self._current_turn, self._ko_point)

    def random_move(self, rng: random.Random) -> Optional[Position]:
        """
        合法手から一様ランダムに1つ選ぶ（プレイアウト用）

        空点をシャッフルして最初に見つかった合法手を返すので、
        全合法手を列挙するより速く、分布は一様のままです。
        """
        if self.is_game_over or self._replay_mode:
            return None
        candidates = self._board.empty_positions()
        rng.shuffle(candidates)
        for pos in candidates:
            if self._rule.is_valid_move(self._board, pos.row, pos.col, self._current_turn, self._ko_point):
                return pos
        return None

    # === 着手 ===

    def _new_move(self, kind: MoveKind, stone: Stone, row: int = -1, col: int = -1, **kwargs: Any) -> Move:
        return Move(
            kind, stone, row, col,
            player_name=self._players[stone].name,
            move_number=len(self._move_history) + 1,
            prev_ko_point=self._ko_point,
            prev_passes=self._consecutive_passes,
            **kwargs,
        )

    def _commit(self, move: Move) -> Move:
        """手を棋譜と履歴に追加"""
        move = self._recorder.record_move(move, self._board)
        self._move_history.append(move)
        return move

    def play_move(self, row: int, col: int) -> bool:
        """
        現在の手番のプレイヤーが指定座標に石を置く

        Returns:
            成功したらTrue、失敗（不正な手、ゲーム終了済み、リプレイ中）ならFalse
        """
        if not self.is_valid_move(row, col):
            return False

        stone = self._current_turn
        self._board.set_stone(row, col, stone)
        affected = self._rule.apply_move_effects(self._board, row, col, stone)

        move = self._commit(self._new_move(MoveKind.PLACE, stone, row, col, affected=tuple(affected)))
        self._ko_point = self._rule.ko_point_after(affected)
        self._consecutive_passes = 0
        self._last_affected = list(affected)

        logger.debug("%s", move.describe())
        if affected:
            verb = "flips" if self.game_type == GameType.REVERSI else "captures"
            self._recorder.add_annotation(f"{move.describe()} and {verb} {len(affected)} stone(s)")

        self._notify_listeners(GameEvent(
            event_type="MOVE_MADE",
            move=move,
            player=self._players[stone],
            status=self._status,
            message=move.describe(),
        ))

        status = self._rule.check_winner(self._board, row, col, stone)
        if status != GameStatus.ONGOING:
            self._finish(status)
            return True

        self._current_turn = stone.opponent()
        self._after_turn_switch()
        return True

    def pass_turn(self) -> bool:
        """
        パス

        囲碁・リバーシで2回連続のパスが成立すると終局し、得点で勝敗を決めます。

        Returns:
            成功したらTrue（五目並べ、終局後、リプレイ中は False）
        """
        if self.is_game_over or self._replay_mode:
            return False
        if not self._rule.allows_pass:
            return False

        self._apply_pass(auto=False)
        self._after_turn_switch()
        return True

    def _apply_pass(self, auto: bool) -> None:
        stone = self._current_turn
        move = self._commit(self._new_move(MoveKind.PASS, stone, auto=auto))
        self._consecutive_passes += 1
        self._ko_point = None
        self._last_affected = []

        logger.debug("%s", move.describe())
        self._recorder.add_annotation(move.describe())
        self._notify_listeners(GameEvent(
            event_type="MOVE_MADE",
            move=move,
            player=self._players[stone],
            status=self._status,
            message=move.describe(),
        ))

        if self._consecutive_passes >= 2:
            self._finish(self._rule.result_from_score(self._board))
        else:
            self._current_turn = stone.opponent()

    def _after_turn_switch(self) -> None:
        """
        手番交代後の自動パス判定（リバーシ）

        次の手番に合法手がなければ自動でパスし、元の手番にも合法手がなければ終局。
        """
        if not self._rule.auto_pass or self.is_game_over or self._suppress_auto_pass:
            return
        if self._rule.has_valid_move(self._board, self._current_turn, self._ko_point):
            return

        self._apply_pass(auto=True)
        self._end_if_stuck()

    def _end_if_stuck(self) -> None:
        if self.is_game_over:
            return
        if not self._rule.has_valid_move(self._board, self._current_turn, self._ko_point):
            self._finish(self._rule.result_from_score(self._board))

    def resign(self, player: Player) -> bool:
        """
        投了

        手番でないプレイヤーも投了できます。

        Returns:
            成功したらTrue（終局後、リプレイ中は False）
        """
        if self.is_game_over or self._replay_mode:
            return False
        if player.color not in self._players:
            return False

        stone = player.color
        resigning = self._players[stone]
        move = self._commit(self._new_move(MoveKind.RESIGN, stone, prev_turn=self._current_turn))
        resigning.resign()
        self._status = GameStatus.win_for(stone.opponent())

        logger.debug("%s", move.describe())
        self._notify_listeners(GameEvent(
            event_type="PLAYER_RESIGNED",
            move=move,
            player=resigning,
            winner=self.winner,
            status=self._status,
            message=move.describe(),
        ))
        self._finish(self._status)
        return True

    def _finish(self, status: GameStatus) -> None:
        self._status = status
        summary = self._result_summary()
        logger.debug("Game over: %s", summary)
        self._recorder.end_game(status, summary)
        self._notify_listeners(GameEvent(
            event_type="GAME_ENDED",
            winner=self.winner,
            status=status,
            message=summary,
        ))

    def _result_summary(self) -> str:
        last = self._move_history[-1] if self._move_history else None
        if last is not None and last.is_resign:
            prefix = f"{last.describe()}. "
        elif self.game_type == GameType.GOMOKU:
            prefix = ""
        else:
            black_score, white_score = self._rule.score(self._board)
            prefix = f"Final score: Black {black_score:g} - White {white_score:g}. "

        winner = self.winner
        if winner is None:
            return prefix + "Draw"
        return prefix + f"{winner.name} ({winner.color.name}) wins"

    # === Undo ===

    def undo(self) -> bool:
        """
        直前の手を取り消す

        終局後は取り消せません（投了の取り消しのみ可能で、投了前の状態に戻ります）。
        リバーシの自動パスは、それを引き起こした着手と一緒に取り消します。

        Returns:
            成功したらTrue
        """
        if self._replay_mode or not self._move_history:
            return False

        last = self._move_history[-1]
        if self.is_game_over and not last.is_resign:
            return False

        self._undo_last()
        if last.is_pass and last.auto and self._move_history:
            self._undo_last()

        self._recorder.add_annotation(f"Undo: {last.describe()}")
        return True

    def _undo_last(self) -> None:
        move = self._move_history.pop()
        self._recorder.retract_last()

        if move.is_place:
            self._board.clear_stone(move.row, move.col)
            self._rule.undo_move_effects(self._board, move)
            self._current_turn = move.stone
        elif move.is_pass:
            self._current_turn = move.stone
        else:
            self._players[move.stone].resigned = False
            self._current_turn = move.prev_turn or move.stone

        self._ko_point = move.prev_ko_point
        self._consecutive_passes = move.prev_passes
        self._status = GameStatus.ONGOING

        previous = self._move_history[-1] if self._move_history else None
        self._last_affected = list(previous.affected) if previous and previous.is_place else []

    # === 得点・表示 ===

    def stone_counts(self) -> tuple[int, int]:
        """(黒の石数, 白の石数)"""
        return self._board.count(Stone.BLACK), self._board.count(Stone.WHITE)

    def score(self) -> tuple[float, float]:
        """ルールに従った (黒の得点, 白の得点)"""
        return self._rule.score(self._board)

    def status_text(self) -> str:
        """現在の状況を表す文字列"""
        if self.is_game_over:
            return f"Game over: {self._result_summary()}"

        player = self.current_player
        parts = [f"{player.name} ({player.color.name}) to move", f"move {len(self._move_history) + 1}"]
        if self.game_type == GameType.GO:
            parts.append(f"passes: {self._consecutive_passes}")
        elif self.game_type == GameType.REVERSI:
            black, white = self.stone_counts()
            parts.append(f"Black {black} - White {white}")
        if self._replay_mode:
            parts.append(f"replay {self._replay_step}/{self._recorder.total_moves}")
        return " | ".join(parts)

    # === AI割り当て ===

    def set_agent(self, color: Stone, ai_type: AIType) -> bool:
        """
        指定色の操作をAIに割り当てる（AIType.NONE で人間）

        Returns:
            割り当てたらTrue（リプレイ中は棋譜も割り当ても変えずFalse）

        Raises:
            ValueError: EMPTY を指定した場合
        """
        if color not in self._agents:
            raise ValueError(f"Cannot assign an agent to {color.name}")
        if self._replay_mode:
            return False
        self._agents[color] = ai_type
        controller = "human" if ai_type == AIType.NONE else f"{ai_type.value} AI"
        self._recorder.add_annotation(f"{color.name} is controlled by {controller}")
        return True

    def get_agent(self, color: Stone) -> AIType:
        return self._agents.get(color, AIType.NONE)

    def is_ai_turn(self) -> bool:
        """現在の手番がAIに割り当てられているか"""
        if self.is_game_over or self._replay_mode:
            return False
        return self._agents[self._current_turn] != AIType.NONE

    # === 保存・復元・コピー ===

    def _capture(self, recorder: GameRecorder) -> GameSnapshot:
        return GameSnapshot(
            rule_config=self._rule.get_rule_config(),
            board=self._board.copy(),
            black=Player(self.black_player.name, Stone.BLACK, self.black_player.resigned),
            white=Player(self.white_player.name, Stone.WHITE, self.white_player.resigned),
            current_turn=self._current_turn,
            status=self._status,
            move_history=list(self._move_history),
            consecutive_passes=self._consecutive_passes,
            ko_point=self._ko_point,
            last_affected=list(self._last_affected),
            recorder=recorder,
            agents=dict(self._agents),
        )

    def _load(self, snapshot: GameSnapshot) -> None:
        """保存データの内容で状態を上書き（プレイヤーオブジェクトは同一性を保つ）"""
        self._board = snapshot.board.copy()
        for color, saved in ((Stone.BLACK, snapshot.black), (Stone.WHITE, snapshot.white)):
            self._players[color].name = saved.name
            self._players[color].resigned = saved.resigned
        self._current_turn = snapshot.current_turn
        self._status = snapshot.status
        self._move_history = list(snapshot.move_history)
        self._consecutive_passes = snapshot.consecutive_passes
        self._ko_point = snapshot.ko_point
        self._last_affected = list(snapshot.last_affected)
        self._recorder = snapshot.recorder.copy()
        self._agents = {Stone.BLACK: AIType.NONE, Stone.WHITE: AIType.NONE}
        self._agents.update(snapshot.agents)

    def snapshot(self) -> GameSnapshot:
        """
        現在の対局状態を保存

        リプレイ中の場合は、リプレイに入る前の対局状態を保存します。
        """
        if self._replay_mode and self._live_state is not None:
            return self._live_state.copy()
        return self._capture(self._recorder.copy())

    def restore(self, snapshot: GameSnapshot) -> None:
        """
        保存データから対局状態を復元

        リプレイモードは解除されます。

        Raises:
            ValueError: 別のゲーム種別・盤面サイズの保存データの場合
        """
        if snapshot.rule_config != self._rule.get_rule_config():
            raise ValueError(
                f"Snapshot rule {snapshot.rule_config} does not match {self._rule.get_rule_config()}"
            )
        self._replay_mode = False
        self._replay_step = 0
        self._live_state = None
        self._load(snapshot)

    @classmethod
    def from_snapshot(cls, snapshot: GameSnapshot) -> "GameEngine":
        """保存データから新しいエンジンを作成（ルールはレジストリから復元）"""
        rule = RuleRegistry.create_from_config(snapshot.rule_config)
        engine = cls(rule, black=Player(snapshot.black.name, Stone.BLACK),
                     white=Player(snapshot.white.name, Stone.WHITE))
        engine.restore(snapshot)
        return engine

    def copy(self, with_record: bool = False) -> "GameEngine":
        """
        独立したコピーを作成（探索用）

        リスナーはコピーされません。with_record=False の場合、
        コピー側では棋譜を記録しません。
        """
        new_engine = GameEngine.__new__(GameEngine)
        new_engine._rule = self._rule
        new_engine._board = self._board.copy()
        new_engine._players = {
            color: Player(player.name, player.color, player.resigned)
            for color, player in self._players.items()
        }
        new_engine._current_turn = self._current_turn
        new_engine._status = self._status
        new_engine._listeners = []
        new_engine._move_history = list(self._move_history)
        new_engine._consecutive_passes = self._consecutive_passes
        new_engine._ko_point = self._ko_point
        new_engine._last_affected = list(self._last_affected)
        new_engine._agents = dict(self._agents)
        new_engine._replay_mode = False
        new_engine._replay_step = 0
        new_engine._live_state = None
        new_engine._suppress_auto_pass = self._suppress_auto_pass
        if with_record:
            new_engine._recorder = self._recorder.copy()
        else:
            new_engine._recorder = GameRecorder(enabled=False)
        return new_engine

    # === リプレイ ===

    def set_replay_mode(self, enabled: bool) -> None:
        """
        リプレイモードの切り替え

        有効にすると現在の対局状態を退避して初期局面（0手目）を表示します。
        無効にすると退避した対局状態に戻ります。
        """
        if enabled == self._replay_mode:
            return

        if enabled:
            self._live_state = self._capture(self._recorder)
            self._replay_mode = True
            self._replay_step = 0
            self._show_replay_step(0)
        else:
            live = self._live_state
            self._replay_mode = False
            self._replay_step = 0
            self._live_state = None
            if live is not None:
                self._load(live)

    def set_replay_step(self, step: int) -> bool:
        """
        リプレイで表示する手数を設定（[0, 総手数] に丸める）

        Returns:
            リプレイモード中ならTrue
        """
        if not self._replay_mode:
            return False
        step = max(0, min(step, self._recorder.total_moves))
        self._replay_step = step
        self._show_replay_step(step)
        return True

    def _show_replay_step(self, step: int) -> None:
        replayed = self.replay_engine(step)
        self._board = replayed._board
        self._current_turn = replayed._current_turn
        self._status = replayed._status
        self._move_history = replayed._move_history
        self._consecutive_passes = replayed._consecutive_passes
        self._ko_point = replayed._ko_point
        self._last_affected = replayed._last_affected
        for color, player in replayed._players.items():
            self._players[color].resigned = player.resigned

    def replay_engine(self, step: int) -> "GameEngine":
        """
        棋譜の最初の step 手を再適用した新しいエンジンを作成

        Raises:
            ValueError: step が範囲外の場合
            RuntimeError: 記録された手が再適用できない場合
        """
        recorder = self._recorder
        if not 0 <= step <= recorder.total_moves:
            raise ValueError(f"step {step} out of range [0, {recorder.total_moves}]")

        engine = GameEngine(
            self._rule,
            black=Player(self.black_player.name, Stone.BLACK),
            white=Player(self.white_player.name, Stone.WHITE),
            record=False,
        )
        initial = recorder.initial_board
        if initial is not None:
            engine._board = initial
        engine._current_turn = recorder.first_stone
        # 自動パスは棋譜に記録されている手をそのまま適用する
        engine._suppress_auto_pass = True

        for move in recorder.moves[:step]:
            if move.is_place:
                accepted = engine.play_move(move.row, move.col)
            elif move.is_pass and move.auto:
                accepted = not engine.is_game_over
                if accepted:
                    engine._apply_pass(auto=True)
                    engine._end_if_stuck()
            elif move.is_pass:
                accepted = engine.pass_turn()
            else:
                accepted = engine.resign(engine._players[move.stone])
            if not accepted:
                raise RuntimeError(f"Recorded move {move.move_number} ({move.describe()}) cannot be replayed")

        engine._suppress_auto_pass = False
        return engine

    # === リセット ===

    def reset(self) -> None:
        """
        ゲームをリセットして初期状態に戻す（新しい棋譜を開始）

        リプレイ中の場合は先にリプレイを終了してからリセットします。
        """
        self.set_replay_mode(False)
        self._board = self._rule.create_board()
        self._current_turn = Stone.BLACK
        self._status = GameStatus.ONGOING
        self._move_history.clear()
        self._consecutive_passes = 0
        self._ko_point = None
        self._last_affected = []
        self._replay_mode = False
        self._replay_step = 0
        self._live_state = None
        for player in self._players.values():
            player.resigned = False

        self._recorder = GameRecorder(
            self._board, self._current_turn,
            snapshot_stride=self._recorder.snapshot_stride,
            title=self._recorder.title,
            enabled=self._recorder.enabled,
        )
        for text in self._rule.start_annotations():
            self._recorder.add_annotation(text)

        self._notify_listeners(GameEvent(
            event_type="GAME_RESET",
            status=GameStatus.ONGOING,
            message="Game has been reset",
        ))
