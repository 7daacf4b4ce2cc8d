"""
Variant Board Engine - AI Strategies Module

AI戦略の実装を提供します。

設計原則:
- AIStrategy は同期メソッド（計算のみ）
- 非同期化は AIController 側の責務
- 各戦略は select_move(engine) で手を返し、打てる手がなければ None（パス）
- 乱数はインスタンスごとの random.Random（seed指定で再現可能）

利用可能なAI:
- RandomAI: 合法手からランダム選択（全ゲーム）
- GomokuRuleAI: 中央寄り・攻め・守りの評価（五目並べ）
- ReversiRuleAI: 位置評価表 + 反転数 + 相手の着手可能数（リバーシ、advancedで2手読み）
- GoRuleAI: 隅 > 辺 > 中央の優先（囲碁、advancedで連結・取りを評価）
- MCTSAI: モンテカルロ木探索（全ゲーム、主に五目並べ）
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Optional
import logging
import math
import random
import threading
import time

from game_core import (
    AIType,
    Board,
    GameType,
    LINE_AXES,
    ORTHOGONAL_DIRECTIONS,
    Position,
    ReversiRule,
    Stone,
    count_line,
    find_group,
    liberties_of,
)
from game_engine import GameEngine


logger = logging.getLogger(__name__)


# ----------------------
# 思考進捗通知
# ----------------------

@dataclass
class ThinkingProgress:
    """
    AI思考進捗を表すデータクラス

    UIでの表示や進捗バーの更新に使用します。
    """
    ai_type: str              # "mcts" など
    elapsed_time: float       # 経過時間（秒）

    simulations_completed: int = 0   # 完了シミュレーション数
    total_simulations: int = 0       # 目標シミュレーション数（時間制限のみなら0）
    top_moves: list[tuple[Position, float]] = field(default_factory=list)  # 上位手と勝率


# 進捗コールバック型
ThinkingProgressCallback = Callable[[ThinkingProgress], None]


class AIStrategy(ABC):
    """
    AI戦略の抽象基底クラス（Strategyパターン）

    全てのAI実装はこのインターフェースを実装します。
    select_move() には対局のコピーを渡すので、戦略側で自由に操作して構いません。
    """

    def __init__(self):
        self._progress_callback: Optional[ThinkingProgressCallback] = None

    @property
    @abstractmethod
    def name(self) -> str:
        """戦略名（表示用）"""
        pass

    @property
    @abstractmethod
    def difficulty(self) -> str:
        """難易度表示（Easy/Medium/Hard）"""
        pass

    @property
    def ai_type(self) -> AIType:
        """対局に登録するAI種別"""
        return AIType.RULE

    @property
    def supports_progress(self) -> bool:
        """進捗通知をサポートするかどうか"""
        return False

    def set_progress_callback(self, callback: Optional[ThinkingProgressCallback]) -> None:
        """
        進捗コールバックを設定

        Args:
            callback: 進捗通知時に呼ばれるコールバック関数（Noneで解除）
        """
        self._progress_callback = callback

    def _report_progress(self, progress: ThinkingProgress) -> None:
        """進捗をコールバックに通知（内部用）"""
        if self._progress_callback:
            try:
                self._progress_callback(progress)
            except Exception:
                logger.exception("Error in thinking progress callback")

    def cancel(self) -> None:
        """思考の中断要求（中断をサポートしない戦略では何もしない）"""

    @abstractmethod
    def select_move(self, engine: GameEngine) -> Optional[Position]:
        """
        手を選択

        Args:
            engine: 現在の対局（コピーなので自由に変更可能）

        Returns:
            選択した座標。合法手がない場合はNone（パス）
        """
        pass


def pick_best(scored: list[tuple[Position, float]], rng: random.Random) -> Optional[Position]:
    """最高評価の手を返す（同点はランダム）"""
    if not scored:
        return None
    best_score = max(score for _, score in scored)
    best_moves = [pos for pos, score in scored if score == best_score]
    return rng.choice(best_moves)


class RandomAI(AIStrategy):
    """
    ランダムAI

    合法手から一様ランダムに選択します。
    テスト用・最弱AIとして使用します。
    """

    def __init__(self, seed: Optional[int] = None):
        """
        Args:
            seed: 乱数シード（テスト用に再現性を確保）
        """
        super().__init__()
        self._rng = random.Random(seed)

    @property
    def ai_type(self) -> AIType:
        return AIType.RANDOM

    @property
    def name(self) -> str:
        return "Random"

    @property
    def difficulty(self) -> str:
        return "Easy"

    def select_move(self, engine: GameEngine) -> Optional[Position]:
        valid_moves = engine.get_valid_moves()
        if not valid_moves:
            return None
        return self._rng.choice(valid_moves)


class GomokuRuleAI(AIStrategy):
    """
    五目並べのルールベースAI

    各合法手を 中央ボーナス + 2 * 攻め + 守り で評価します。
    - 中央ボーナス: max(0, 10 - 中央からのマンハッタン距離)
    - 攻め: 自分の石を置くと2つ以上連続する軸の数
    - 守り: 相手の石を置くと2つ以上連続する軸の数
    """

    CENTER_BONUS = 10
    OFFENSE_WEIGHT = 2
    DEFENSE_WEIGHT = 1

    def __init__(self, seed: Optional[int] = None):
        super().__init__()
        self._rng = random.Random(seed)

    @property
    def name(self) -> str:
        return "Gomoku Rule"

    @property
    def difficulty(self) -> str:
        return "Medium"

    @staticmethod
    def count_connected_axes(board: Board, row: int, col: int, stone: Stone) -> int:
        """(row, col) に stone を置いたとき、2つ以上連続する軸の数"""
        return sum(
            1 for dr, dc in LINE_AXES
            if count_line(board, row, col, dr, dc, stone) >= 2
        )

    def evaluate(self, board: Board, pos: Position, stone: Stone) -> float:
        center = board.size // 2
        distance = abs(pos.row - center) + abs(pos.col - center)
        center_bonus = max(0, self.CENTER_BONUS - distance)
        offense = self.count_connected_axes(board, pos.row, pos.col, stone)
        defense = self.count_connected_axes(board, pos.row, pos.col, stone.opponent())
        return center_bonus + self.OFFENSE_WEIGHT * offense + self.DEFENSE_WEIGHT * defense

    def select_move(self, engine: GameEngine) -> Optional[Position]:
        board = engine.board
        stone = engine.current_turn
        scored = [(pos, self.evaluate(board, pos, stone)) for pos in engine.get_valid_moves()]
        return pick_best(scored, self._rng)


class ReversiRuleAI(AIStrategy):
    """
    リバーシのルールベースAI

    評価 = 位置評価 + 3 * 反転数 - 2 * 着手後の相手の合法手数
           + 自分の隅に隣接していれば +30 + 終盤（石50個以上）は反転数ボーナス

    advanced=True の場合は2手読み（自分の手の評価 - 相手の最善応手の評価）。
    """

    CORNER_VALUE = 100
    DANGER_VALUE = -50        # 空き隅に隣接するX/Cマス
    EDGE_VALUE = 20
    INNER_EDGE_VALUE = 5
    CENTER_VALUE = 1
    FLIP_WEIGHT = 3
    MOBILITY_WEIGHT = -2
    OWNED_CORNER_BONUS = 30
    ENDGAME_STONES = 50
    ENDGAME_FLIP_BONUS = 5

    def __init__(self, seed: Optional[int] = None, advanced: bool = False):
        super().__init__()
        self._rng = random.Random(seed)
        self._advanced = advanced
        self._rule = ReversiRule()

    @property
    def ai_type(self) -> AIType:
        return AIType.ADVANCED if self._advanced else AIType.RULE

    @property
    def name(self) -> str:
        return "Reversi Advanced" if self._advanced else "Reversi Rule"

    @property
    def difficulty(self) -> str:
        return "Hard" if self._advanced else "Medium"

    @staticmethod
    def _corners(size: int) -> list[Position]:
        last = size - 1
        return [Position(0, 0), Position(0, last), Position(last, 0), Position(last, last)]

    def position_value(self, board: Board, pos: Position) -> int:
        """位置評価表の値（X/Cマスは隣接する隅が空のときのみ減点）"""
        size = board.size
        last = size - 1
        corners = self._corners(size)

        if pos in corners:
            return self.CORNER_VALUE

        for corner in corners:
            near = abs(pos.row - corner.row) <= 1 and abs(pos.col - corner.col) <= 1
            if near and board.is_empty(corner.row, corner.col):
                return self.DANGER_VALUE

        if pos.row in (0, last) or pos.col in (0, last):
            return self.EDGE_VALUE
        if pos.row in (1, last - 1) or pos.col in (1, last - 1):
            return self.INNER_EDGE_VALUE
        return self.CENTER_VALUE

    def evaluate(self, board: Board, pos: Position, stone: Stone) -> float:
        """stone が pos に打つ手の静的評価"""
        flips = self._rule.find_flips(board, pos.row, pos.col, stone)
        score = float(self.position_value(board, pos))
        score += self.FLIP_WEIGHT * len(flips)

        after = board.copy()
        after.set_stone(pos.row, pos.col, stone)
        for flipped in flips:
            after.set_stone(flipped.row, flipped.col, stone)
        opponent_mobility = len(self._rule.get_valid_moves(after, stone.opponent()))
        score += self.MOBILITY_WEIGHT * opponent_mobility

        for corner in self._corners(board.size):
            near = abs(pos.row - corner.row) <= 1 and abs(pos.col - corner.col) <= 1
            if near and pos != corner and board.get_stone(corner.row, corner.col) == stone:
                score += self.OWNED_CORNER_BONUS
                break

        if board.stone_count >= self.ENDGAME_STONES:
            score += self.ENDGAME_FLIP_BONUS * len(flips)

        return score

    def _evaluate_two_ply(self, board: Board, pos: Position, stone: Stone) -> float:
        """自分の手の評価から、相手の最善応手の評価を引く"""
        score = self.evaluate(board, pos, stone)

        after = board.copy()
        after.set_stone(pos.row, pos.col, stone)
        self._rule.apply_move_effects(after, pos.row, pos.col, stone)

        opponent = stone.opponent()
        replies = self._rule.get_valid_moves(after, opponent)
        if not replies:
            return score
        return score - max(self.evaluate(after, reply, opponent) for reply in replies)

    def select_move(self, engine: GameEngine) -> Optional[Position]:
        board = engine.board
        stone = engine.current_turn
        evaluate = self._evaluate_two_ply if self._advanced else self.evaluate
        scored = [(pos, evaluate(board, pos, stone)) for pos in engine.get_valid_moves()]
        return pick_best(scored, self._rng)


class GoRuleAI(AIStrategy):
    """
    囲碁のルールベースAI

    通常: 合法手を 隅 / 辺 / 中央 に分類し、空でない最初の分類から一様に選ぶ
          （盤端から距離1以内を辺とみなす）
    advanced=True: 位置（隅30 / 辺15 / 中央5）+ 10 * 自石との連結
                   + 20 * 取れる石 - 15 * 着手後にアタリ、の評価値で選ぶ
    """

    CORNER_SCORE = 30
    EDGE_SCORE = 15
    CENTER_SCORE = 5
    CONNECTION_WEIGHT = 10
    CAPTURE_WEIGHT = 20
    ATARI_PENALTY = 15

    def __init__(self, seed: Optional[int] = None, advanced: bool = False):
        super().__init__()
        self._rng = random.Random(seed)
        self._advanced = advanced

    @property
    def ai_type(self) -> AIType:
        return AIType.ADVANCED if self._advanced else AIType.RULE

    @property
    def name(self) -> str:
        return "Go Advanced" if self._advanced else "Go Rule"

    @property
    def difficulty(self) -> str:
        return "Medium" if self._advanced else "Easy"

    @staticmethod
    def classify(size: int, pos: Position) -> str:
        """"corner" / "edge" / "center" のいずれか"""
        near_row = pos.row <= 1 or pos.row >= size - 2
        near_col = pos.col <= 1 or pos.col >= size - 2
        if near_row and near_col:
            return "corner"
        if near_row or near_col:
            return "edge"
        return "center"

    def evaluate(self, engine: GameEngine, pos: Position) -> float:
        board = engine.board
        stone = engine.current_turn
        bucket = self.classify(board.size, pos)
        score = {
            "corner": self.CORNER_SCORE,
            "edge": self.EDGE_SCORE,
            "center": self.CENTER_SCORE,
        }[bucket]

        for dr, dc in ORTHOGONAL_DIRECTIONS:
            if board.get_stone(pos.row + dr, pos.col + dc) == stone:
                score += self.CONNECTION_WEIGHT

        board.set_stone(pos.row, pos.col, stone)
        captured = engine.rule.apply_move_effects(board, pos.row, pos.col, stone)
        score += self.CAPTURE_WEIGHT * len(captured)
        if len(liberties_of(board, find_group(board, pos.row, pos.col))) <= 1:
            score -= self.ATARI_PENALTY

        return score

    def select_move(self, engine: GameEngine) -> Optional[Position]:
        valid_moves = engine.get_valid_moves()
        if not valid_moves:
            return None

        if self._advanced:
            return pick_best([(pos, self.evaluate(engine, pos)) for pos in valid_moves], self._rng)

        buckets: dict[str, list[Position]] = {"corner": [], "edge": [], "center": []}
        for pos in valid_moves:
            buckets[self.classify(engine.board_size, pos)].append(pos)

        for name in ("corner", "edge", "center"):
            if buckets[name]:
                return self._rng.choice(buckets[name])
        return None


# ----------------------
# MCTS
# ----------------------

def gomoku_threat_score(board: Board, stone: Stone) -> float:
    """
    五目並べの脅威スコア

    全ての空点と4軸について、stone の石が各方向に最大4つまで連続する数を数え、
    両端が塞がれていればその数、開いていれば2倍を潜在値として 2 ** 潜在値 を合計します。
    """
    total = 0.0
    for pos in board.empty_positions():
        for dr, dc in LINE_AXES:
            count = 0
            blocked = False
            for sign in (1, -1):
                r, c = pos.row + dr * sign, pos.col + dc * sign
                steps = 0
                while steps < 4 and board.is_within_bounds(r, c) and board.get_stone(r, c) == stone:
                    count += 1
                    steps += 1
                    r += dr * sign
                    c += dc * sign
                if not board.is_within_bounds(r, c) or board.get_stone(r, c) == stone.opponent():
                    blocked = True
            potential = count if blocked else count * 2
            total += 2 ** potential
    return total


def gomoku_heuristic_value(board: Board, stone: Stone) -> float:
    """stone から見た脅威スコアの比率（0.0〜1.0、双方0なら0.5）"""
    own = gomoku_threat_score(board, stone)
    other = gomoku_threat_score(board, stone.opponent())
    if own + other == 0:
        return 0.5
    return own / (own + other)


class MCTSNode:
    """
    MCTSの探索ノード

    wins / visits は、このノードで手番の色（player_color）から見た勝率です。
    """

    def __init__(
        self,
        game: GameEngine,
        move: Optional[Position] = None,
        parent: Optional["MCTSNode"] = None
    ):
        self.game = game
        self.move = move    # このノードに至った手
        self.parent = parent
        self.player_color = game.current_turn  # このノードで次に打つ石の色
        self.children: list["MCTSNode"] = []
        self.wins: float = 0
        self.visits: int = 0
        self.untried_moves: list[Position] = game.get_valid_moves()

    def value_for_parent(self) -> float:
        """親の手番から見た勝率"""
        rate = self.wins / self.visits
        if self.parent is not None and self.parent.player_color != self.player_color:
            return 1.0 - rate
        return rate

    def ucb1(self, exploration: float = math.sqrt(2)) -> float:
        """UCB1値を計算（未訪問は無限大）"""
        if self.visits == 0:
            return float('inf')

        if self.parent is None or self.parent.visits == 0:
            return float('inf')

        exploration_term = exploration * math.sqrt(
            math.log(self.parent.visits) / self.visits
        )
        return self.value_for_parent() + exploration_term


class MCTSAI(AIStrategy):
    """
    Monte Carlo Tree Search AI

    反復回数または時間制限（両方指定時は先に達した方）で探索を打ち切り、
    ルートの子のうち訪問回数が最大の手を選びます（同数なら先に展開した手）。

    パラメータ目安:
    - iterations=1000: 五目並べ15x15で数秒
    - time_limit=2.0: 2秒まで探索
    """

    # 進捗通知間隔（反復回数）
    PROGRESS_INTERVAL = 50

    def __init__(
        self,
        iterations: Optional[int] = 1000,
        time_limit: Optional[float] = None,
        exploration: float = math.sqrt(2),
        rollout_cap: int = 100,
        seed: Optional[int] = None
    ):
        """
        Args:
            iterations: 反復回数（Noneで無制限）
            time_limit: 時間制限（秒、Noneで無制限）
            exploration: UCB1の探索係数
            rollout_cap: プレイアウトの最大手数
            seed: 乱数シード

        Raises:
            ValueError: iterations と time_limit が両方 None の場合
        """
        super().__init__()
        if iterations is None and time_limit is None:
            raise ValueError("Either iterations or time_limit must be set")
        self._iterations = iterations
        self._time_limit = time_limit
        self._exploration = exploration
        self._rollout_cap = rollout_cap
        self._rng = random.Random(seed)
        self._cancel_event = threading.Event()
        self.last_root: Optional[MCTSNode] = None

    @property
    def ai_type(self) -> AIType:
        return AIType.MCTS

    @property
    def name(self) -> str:
        if self._time_limit and not self._iterations:
            return f"MCTS (time={self._time_limit}s)"
        return f"MCTS (iterations={self._iterations})"

    @property
    def difficulty(self) -> str:
        return "Hard"

    @property
    def supports_progress(self) -> bool:
        return True

    def cancel(self) -> None:
        """探索を打ち切る（その時点の最善手を返す）"""
        self._cancel_event.set()

    def select_move(self, engine: GameEngine) -> Optional[Position]:
        """MCTS探索で手を選択"""
        if engine.is_game_over:
            return None

        valid_moves = engine.get_valid_moves()
        if not valid_moves:
            return None
        if len(valid_moves) == 1:
            self.last_root = None
            return valid_moves[0]

        root = self.search(engine)
        best = self.best_child(root)
        if best is None:
            # 1反復もせずに打ち切られた
            return self._rng.choice(valid_moves)
        return best.move

    @staticmethod
    def best_child(root: MCTSNode) -> Optional[MCTSNode]:
        """訪問回数最大の子（同数なら先に展開した子）"""
        best: Optional[MCTSNode] = None
        for child in root.children:
            if best is None or child.visits > best.visits:
                best = child
        return best

    def search(self, engine: GameEngine) -> MCTSNode:
        """
        探索木を構築してルートを返す

        ルートの visits は完了した反復回数と一致します。
        探索開始前に cancel() されていた場合は1反復もせずに返ります。
        """
        root = MCTSNode(engine.copy())
        self.last_root = root

        start_time = time.time()
        completed = 0

        try:
            while True:
                if self._iterations is not None and completed >= self._iterations:
                    break
                if self._time_limit is not None and time.time() - start_time >= self._time_limit:
                    break
                if self._cancel_event.is_set():
                    break

                node = self._select(root)
                if node.untried_moves and not node.game.is_game_over:
                    node = self._expand(node)
                value = self._simulate(node)
                self._backpropagate(node, value)
                completed += 1

                if completed % self.PROGRESS_INTERVAL == 0:
                    self._report_progress(self._progress(root, start_time, completed))
        finally:
            self._cancel_event.clear()

        self._report_progress(self._progress(root, start_time, completed))

        best = self.best_child(root)
        logger.debug(
            "MCTS finished %d iterations in %.3fs, best move %s",
            completed, time.time() - start_time, best.move if best else None,
        )
        return root

    def _progress(self, root: MCTSNode, start_time: float, completed: int) -> ThinkingProgress:
        return ThinkingProgress(
            ai_type="mcts",
            elapsed_time=time.time() - start_time,
            simulations_completed=completed,
            total_simulations=self._iterations or 0,
            top_moves=self._get_top_moves(root, 5),
        )

    def _get_top_moves(self, root: MCTSNode, count: int) -> list[tuple[Position, float]]:
        """上位の手と勝率（ルートの手番から見た値）"""
        sorted_children = sorted(root.children, key=lambda c: c.visits, reverse=True)
        return [
            (child.move, child.value_for_parent())
            for child in sorted_children[:count]
            if child.visits > 0 and child.move is not None
        ]

    def _select(self, node: MCTSNode) -> MCTSNode:
        """Selection: 未試行の手が残るノードか葉まで降りる"""
        while not node.untried_moves and node.children:
            unvisited = next((c for c in node.children if c.visits == 0), None)
            if unvisited is not None:
                return unvisited
            node = max(node.children, key=lambda c: c.ucb1(self._exploration))
        return node

    def _expand(self, node: MCTSNode) -> MCTSNode:
        """Expansion: 未試行の手を1つランダムに選んで子ノードを作る"""
        move = self._rng.choice(node.untried_moves)
        node.untried_moves.remove(move)

        game = node.game.copy()
        game.play_move(move.row, move.col)

        child = MCTSNode(game, move=move, parent=node)
        node.children.append(child)
        return child

    def _simulate(self, node: MCTSNode) -> float:
        """
        ランダムプレイアウト

        Returns:
            node.player_color から見た評価値（勝ち1.0 / 負け0.0 / 引き分け0.5）
        """
        game = node.game.copy()
        plies = 0

        while not game.is_game_over and plies < self._rollout_cap:
            move = game.random_move(self._rng)
            if move is not None:
                game.play_move(move.row, move.col)
            elif not game.pass_turn():
                break
            plies += 1

        if game.is_game_over:
            winner = game.status.winner_stone
            if winner is None:
                return 0.5
            return 1.0 if winner == node.player_color else 0.0

        if game.game_type == GameType.GOMOKU:
            return gomoku_heuristic_value(game.board, node.player_color)
        return 0.5

    def _backpropagate(self, node: MCTSNode, value: float) -> None:
        """結果を親に伝播（手番が変わるノードをまたぐときに反転）"""
        current: Optional[MCTSNode] = node
        while current is not None:
            current.visits += 1
            current.wins += value
            parent = current.parent
            if parent is not None and parent.player_color != current.player_color:
                value = 1.0 - value
            current = parent


# ----------------------
# AI戦略ファクトリ
# ----------------------

class AIStrategyFactory:
    """AI戦略のファクトリ"""

    @staticmethod
    def create(name: str, **kwargs) -> AIStrategy:
        """
        名前からAI戦略を作成

        Args:
            name: 戦略名（list_available() を参照）
            **kwargs: 各戦略固有のパラメータ

        Returns:
            AI戦略インスタンス

        Examples:
            >>> ai = AIStrategyFactory.create("mcts", iterations=500, seed=1)
            >>> ai = AIStrategyFactory.create("reversi_advanced")
        """
        name_lower = name.lower()
        seed = kwargs.get("seed")

        if name_lower == "random":
            return RandomAI(seed=seed)

        elif name_lower == "gomoku_rule":
            return GomokuRuleAI(seed=seed)

        elif name_lower in ("reversi_rule", "reversi_advanced"):
            return ReversiRuleAI(seed=seed, advanced=name_lower == "reversi_advanced")

        elif name_lower in ("go_rule", "go_advanced"):
            return GoRuleAI(seed=seed, advanced=name_lower == "go_advanced")

        elif name_lower == "mcts":
            return MCTSAI(
                iterations=kwargs.get("iterations", 1000),
                time_limit=kwargs.get("time_limit"),
                exploration=kwargs.get("exploration", math.sqrt(2)),
                rollout_cap=kwargs.get("rollout_cap", 100),
                seed=seed,
            )

        else:
            raise ValueError(f"Unknown AI strategy: {name}")

    @staticmethod
    def for_game(game_type: GameType, ai_type: AIType, **kwargs) -> Optional[AIStrategy]:
        """
        ゲーム種別とAI種別から戦略を作成

        Returns:
            AI戦略インスタンス（AIType.NONE の場合はNone）
        """
        if ai_type == AIType.NONE:
            return None
        if ai_type == AIType.RANDOM:
            return AIStrategyFactory.create("random", **kwargs)
        if ai_type == AIType.MCTS:
            return AIStrategyFactory.create("mcts", **kwargs)

        advanced = ai_type == AIType.ADVANCED
        if game_type == GameType.GOMOKU:
            name = "mcts" if advanced else "gomoku_rule"
        elif game_type == GameType.REVERSI:
            name = "reversi_advanced" if advanced else "reversi_rule"
        else:
            name = "go_advanced" if advanced else "go_rule"
        return AIStrategyFactory.create(name, **kwargs)

    @staticmethod
    def list_available() -> list[str]:
        """利用可能な戦略名一覧"""
        return ["random", "gomoku_rule", "reversi_rule", "reversi_advanced", "go_rule", "go_advanced", "mcts"]
