"""
Variant Board Engine - AI Strategies Tests

AI戦略のユニットテストを提供します。
"""

import threading
import time

import pytest
from unittest.mock import Mock

from game_core import (
    AIType,
    Board,
    GameStatus,
    GomokuRule,
    GoRule,
    Player,
    Position,
    ReversiRule,
    Stone,
)
from game_engine import GameEngine, GameSnapshot
from game_record import GameRecorder
from ai_strategies import (
    AIStrategyFactory,
    GomokuRuleAI,
    GoRuleAI,
    MCTSAI,
    MCTSNode,
    RandomAI,
    ReversiRuleAI,
    ThinkingProgress,
    gomoku_heuristic_value,
    gomoku_threat_score,
)


def engine_with_board(rule, rows: list[str], turn: Stone = Stone.BLACK) -> GameEngine:
    """テスト用: 任意の局面から始まる対局を作成"""
    board = Board.from_rows(rows)
    engine = GameEngine(rule)
    engine.restore(GameSnapshot(
        rule_config=rule.get_rule_config(),
        board=board,
        black=Player("Black", Stone.BLACK),
        white=Player("White", Stone.WHITE),
        current_turn=turn,
        status=GameStatus.ONGOING,
        move_history=[],
        consecutive_passes=0,
        ko_point=None,
        last_affected=[],
        recorder=GameRecorder(board, turn),
    ))
    return engine


# 黒が横に4つ並べ、(3,0) か (3,5) で勝てる局面
GOMOKU_FOUR = [
    "W.W.W...",
    "........",
    "........",
    ".BBBB...",
    "........",
    "........",
    "........",
    "......W.",
]

# 黒が (0,0) の隅を取れる局面
REVERSI_CORNER = [
    ".WB.....",
    "........",
    "........",
    "...WB...",
    "...BW...",
    "........",
    "........",
    "........",
]


class TestRandomAI:
    """RandomAIのテスト"""

    def test_always_returns_valid_move(self):
        """常に合法手を返す"""
        ai = RandomAI(seed=42)
        engine = GameEngine(ReversiRule())
        for _ in range(30):
            if engine.is_game_over:
                break
            move = ai.select_move(engine)
            assert move in engine.get_valid_moves()
            engine.play_move(move.row, move.col)

    def test_deterministic_with_seed(self):
        """シード指定で再現性がある"""
        engine = GameEngine(GoRule(board_size=9))
        assert RandomAI(seed=42).select_move(engine) == RandomAI(seed=42).select_move(engine)

    def test_no_move_when_game_over(self):
        """打てる手がなければNone"""
        engine = GameEngine(GoRule(board_size=9))
        engine.pass_turn()
        engine.pass_turn()
        assert RandomAI(seed=1).select_move(engine) is None

    def test_name_and_type(self):
        """名前と種別"""
        ai = RandomAI()
        assert ai.name == "Random"
        assert ai.difficulty == "Easy"
        assert ai.ai_type == AIType.RANDOM


class TestGomokuRuleAI:
    """五目並べのルールベースAIのテスト"""

    def test_first_move_center(self):
        """空の盤面では中央"""
        engine = GameEngine(GomokuRule())
        assert GomokuRuleAI(seed=0).select_move(engine) == Position(7, 7)

    def test_evaluate(self):
        """中央ボーナス + 2 * 攻め + 守り"""
        board = Board(15)
        board.set_stone(7, 7, Stone.BLACK)
        ai = GomokuRuleAI()
        # 中央から距離1で9点、横に2つ並ぶので攻め1
        assert ai.evaluate(board, Position(7, 8), Stone.BLACK) == 11
        # 白から見ると守り1
        assert ai.evaluate(board, Position(7, 8), Stone.WHITE) == 10

    def test_blocks_next_to_opponent(self):
        """相手の石に隣接する中央寄りの点を選ぶ"""
        engine = GameEngine(GomokuRule())
        engine.play_move(7, 7)
        move = GomokuRuleAI(seed=3).select_move(engine)
        assert move in {Position(6, 7), Position(8, 7), Position(7, 6), Position(7, 8)}

    def test_connected_axes(self):
        """2つ以上連続する軸の数"""
        board = Board(15)
        board.set_stone(7, 7, Stone.BLACK)
        board.set_stone(6, 6, Stone.BLACK)
        assert GomokuRuleAI.count_connected_axes(board, 7, 8, Stone.BLACK) == 1
        assert GomokuRuleAI.count_connected_axes(board, 8, 8, Stone.BLACK) == 1
        assert GomokuRuleAI.count_connected_axes(board, 6, 7, Stone.BLACK) == 2


class TestReversiRuleAI:
    """リバーシのルールベースAIのテスト"""

    def test_position_values(self):
        """位置評価表"""
        ai = ReversiRuleAI()
        board = ReversiRule().create_board()
        assert ai.position_value(board, Position(0, 0)) == 100
        assert ai.position_value(board, Position(1, 1)) == -50
        assert ai.position_value(board, Position(0, 1)) == -50
        assert ai.position_value(board, Position(0, 3)) == 20
        assert ai.position_value(board, Position(1, 3)) == 5
        assert ai.position_value(board, Position(3, 3)) == 1

    def test_danger_square_next_to_taken_corner(self):
        """隅が埋まっていればX/Cマスの減点はない"""
        ai = ReversiRuleAI()
        board = ReversiRule().create_board()
        board.set_stone(0, 0, Stone.BLACK)
        assert ai.position_value(board, Position(0, 1)) == 20
        assert ai.position_value(board, Position(1, 1)) == 5

    def test_opening_evaluation(self):
        """初手は位置1 + 反転1*3 - 相手の合法手3*2"""
        ai = ReversiRuleAI()
        board = ReversiRule().create_board()
        for pos in (Position(2, 3), Position(3, 2), Position(4, 5), Position(5, 4)):
            assert ai.evaluate(board, pos, Stone.BLACK) == -2.0

    def test_owned_corner_bonus(self):
        """自分の隅に隣接する手は+30"""
        ai = ReversiRuleAI()
        board = Board.from_rows([
            "B.......",
            "W.......",
            "........",
            "........",
            "........",
            "........",
            "........",
            "........",
        ])
        plain = Board.from_rows([
            "........",
            "W.......",
            "........",
            "........",
            "........",
            "........",
            "........",
            "........",
        ])
        # どちらも反転0、白の合法手は (1,2) の1つ
        with_corner = ai.evaluate(board, Position(1, 1), Stone.BLACK) - ai.position_value(board, Position(1, 1))
        without = ai.evaluate(plain, Position(1, 1), Stone.BLACK) - ai.position_value(plain, Position(1, 1))
        assert with_corner - without == 30

    def test_takes_corner(self):
        """隅を取れるなら取る"""
        engine = engine_with_board(ReversiRule(), REVERSI_CORNER)
        assert ReversiRuleAI(seed=0).select_move(engine) == Position(0, 0)

    def test_advanced_takes_corner(self):
        """2手読みでも隅を取る"""
        engine = engine_with_board(ReversiRule(), REVERSI_CORNER)
        ai = ReversiRuleAI(seed=0, advanced=True)
        assert ai.select_move(engine) == Position(0, 0)
        assert ai.ai_type == AIType.ADVANCED
        assert ai.name == "Reversi Advanced"

    def test_select_is_legal(self):
        """選んだ手は合法手"""
        engine = GameEngine(ReversiRule())
        ai = ReversiRuleAI(seed=5)
        for _ in range(10):
            if engine.is_game_over:
                break
            move = ai.select_move(engine)
            assert engine.play_move(move.row, move.col)


class TestGoRuleAI:
    """囲碁のルールベースAIのテスト"""

    def test_classify(self):
        """隅・辺・中央の分類（盤端から距離1まで）"""
        assert GoRuleAI.classify(9, Position(0, 0)) == "corner"
        assert GoRuleAI.classify(9, Position(1, 7)) == "corner"
        assert GoRuleAI.classify(9, Position(1, 4)) == "edge"
        assert GoRuleAI.classify(9, Position(4, 8)) == "edge"
        assert GoRuleAI.classify(9, Position(4, 4)) == "center"

    def test_prefers_corner(self):
        """空の盤面では隅を選ぶ"""
        engine = GameEngine(GoRule(board_size=9))
        ai = GoRuleAI(seed=8)
        for _ in range(5):
            move = ai.select_move(engine)
            assert GoRuleAI.classify(9, move) == "corner"

    def test_advanced_prefers_capture(self):
        """上級は取れる石を取る"""
        engine = engine_with_board(GoRule(board_size=9), ["WB......."] + ["........."] * 8)
        ai = GoRuleAI(seed=0, advanced=True)
        assert ai.select_move(engine) == Position(1, 0)

    def test_advanced_evaluate(self):
        """位置 + 連結 + 取り"""
        engine = engine_with_board(GoRule(board_size=9), ["WB......."] + ["........."] * 8)
        ai = GoRuleAI(advanced=True)
        assert ai.evaluate(engine, Position(1, 0)) == 50
        assert ai.evaluate(engine, Position(1, 1)) == 40
        assert ai.evaluate(engine, Position(4, 4)) == 5

    def test_no_move_when_game_over(self):
        """打てる手がなければNone"""
        engine = GameEngine(GoRule(board_size=9))
        engine.pass_turn()
        engine.pass_turn()
        assert GoRuleAI().select_move(engine) is None


class TestGomokuHeuristic:
    """プレイアウト打ち切り時の五目並べ評価"""

    def test_empty_board_is_even(self):
        """空の盤面は0.5"""
        assert gomoku_heuristic_value(Board(9), Stone.BLACK) == 0.5

    def test_stones_raise_threat(self):
        """石の多い側の評価が高い"""
        board = Board(9)
        board.set_stone(4, 3, Stone.BLACK)
        board.set_stone(4, 4, Stone.BLACK)
        board.set_stone(0, 0, Stone.WHITE)
        assert gomoku_threat_score(board, Stone.BLACK) > gomoku_threat_score(board, Stone.WHITE)
        assert gomoku_heuristic_value(board, Stone.BLACK) > 0.5
        assert gomoku_heuristic_value(board, Stone.WHITE) < 0.5


class TestMCTSNode:
    """MCTSNodeのテスト"""

    def test_unvisited_is_infinite(self):
        """未訪問のノードは無限大"""
        node = MCTSNode(GameEngine(GomokuRule(board_size=5)))
        assert node.ucb1() == float('inf')

    def test_value_for_parent_flips(self):
        """手番が変わる子ノードの勝率は親から見て反転"""
        engine = GameEngine(GomokuRule(board_size=5))
        root = MCTSNode(engine)
        child_game = engine.copy()
        child_game.play_move(2, 2)
        child = MCTSNode(child_game, move=Position(2, 2), parent=root)
        child.wins, child.visits = 3, 4
        root.visits = 4
        assert child.value_for_parent() == 0.25

    def test_untried_moves(self):
        """未試行の手は合法手と同じ"""
        engine = GameEngine(GomokuRule(board_size=5))
        assert len(MCTSNode(engine).untried_moves) == 25


class TestMCTSAI:
    """MCTSAIのテスト"""

    def test_root_visits_equal_iterations(self):
        """ルートの訪問回数は反復回数と一致"""
        ai = MCTSAI(iterations=120, seed=1)
        root = ai.search(GameEngine(GoRule(board_size=5)))
        assert root.visits == 120
        assert sum(child.visits for child in root.children) == 120

    def test_deterministic_with_seed(self):
        """同じシードなら同じ手（5x5の五目並べ、50回）"""
        engine = GameEngine(GomokuRule(board_size=5))
        first = MCTSAI(iterations=50, seed=123)
        second = MCTSAI(iterations=50, seed=123)
        move = first.select_move(engine)
        assert move == second.select_move(engine)
        assert move in engine.get_valid_moves()
        assert first.last_root.visits == 50

    @pytest.mark.parametrize("seed", [1, 2])
    def test_visit_total_exact_for_any_seed(self, seed):
        """シードが違ってもルートの訪問回数は反復回数ちょうど"""
        ai = MCTSAI(iterations=50, seed=seed)
        assert ai.select_move(GameEngine(GomokuRule(board_size=5))) is not None
        assert ai.last_root.visits == 50

    @pytest.mark.parametrize("rule", [GomokuRule(board_size=5), GoRule(board_size=5), ReversiRule()])
    def test_child_visits_never_exceed_parent(self, rule):
        """木のどのノードでも子の訪問回数は親以下"""
        root = MCTSAI(iterations=150, seed=3).search(GameEngine(rule))

        def walk(node: MCTSNode) -> int:
            checked = 1
            for child in node.children:
                assert child.visits <= node.visits
                checked += walk(child)
            assert sum(child.visits for child in node.children) <= node.visits
            return checked

        assert root.visits == 150
        assert walk(root) > len(root.children)

    def test_cancel_before_search(self):
        """探索開始前の中断も有効で、次の探索には持ち越さない"""
        ai = MCTSAI(iterations=200, seed=5)
        engine = GameEngine(GoRule(board_size=5))
        ai.cancel()
        assert ai.search(engine).visits == 0
        assert ai.search(engine).visits == 200

    def test_cancel_before_select_move(self):
        """探索前に中断されても合法手を返す"""
        ai = MCTSAI(iterations=200, seed=5)
        engine = GameEngine(ReversiRule())
        ai.cancel()
        assert ai.select_move(engine) in engine.get_valid_moves()

    def test_finds_winning_move(self):
        """勝てる手を見つける"""
        engine = engine_with_board(GomokuRule(board_size=8), GOMOKU_FOUR)
        move = MCTSAI(iterations=300, seed=7).select_move(engine)
        assert move in {Position(3, 0), Position(3, 5)}

    def test_backpropagate_flips_value(self):
        """逆伝播は手番が変わるたびに反転する"""
        engine = GameEngine(GomokuRule(board_size=5))
        root = MCTSNode(engine)
        child_game = engine.copy()
        child_game.play_move(0, 0)
        child = MCTSNode(child_game, move=Position(0, 0), parent=root)
        MCTSAI(iterations=1)._backpropagate(child, 1.0)
        assert (child.wins, child.visits) == (1.0, 1)
        assert (root.wins, root.visits) == (0.0, 1)

    def test_does_not_mutate_engine(self):
        """探索は元の対局を変更しない"""
        engine = GameEngine(ReversiRule())
        before = engine.board
        MCTSAI(iterations=30, seed=2).select_move(engine)
        assert engine.board == before
        assert engine.move_count == 0

    def test_single_valid_move(self):
        """合法手が1つならそれを返す"""
        engine = engine_with_board(GomokuRule(board_size=5), [
            "BWBWB",
            "BWBWB",
            "WBWBW",
            "WBWBW",
            "BWBW.",
        ])
        ai = MCTSAI(iterations=10, seed=1)
        ai.select_move(GameEngine(GomokuRule(board_size=5)))
        assert ai.last_root is not None
        assert ai.select_move(engine) == Position(4, 4)
        assert ai.last_root is None

    def test_game_over_returns_none(self):
        """終局後はNone"""
        engine = GameEngine(GoRule(board_size=5))
        engine.pass_turn()
        engine.pass_turn()
        assert MCTSAI(iterations=10).select_move(engine) is None

    def test_respects_time_limit(self):
        """時間制限で打ち切る"""
        ai = MCTSAI(iterations=None, time_limit=0.2, seed=4)
        start = time.time()
        move = ai.select_move(GameEngine(GoRule(board_size=9)))
        assert time.time() - start < 2.0
        assert move is not None

    def test_cancel(self):
        """別スレッドからの中断で探索が止まる"""
        ai = MCTSAI(iterations=None, time_limit=30.0, seed=4)
        timer = threading.Timer(0.1, ai.cancel)
        timer.start()
        start = time.time()
        move = ai.select_move(GameEngine(GomokuRule(board_size=9)))
        timer.join()
        assert time.time() - start < 10.0
        assert move is not None

    def test_requires_a_limit(self):
        """反復回数と時間制限の両方がNoneならValueError"""
        with pytest.raises(ValueError):
            MCTSAI(iterations=None, time_limit=None)

    def test_progress_callback(self):
        """進捗が通知される"""
        ai = MCTSAI(iterations=100, seed=9)
        callback = Mock()
        ai.set_progress_callback(callback)
        ai.select_move(GameEngine(GomokuRule(board_size=5)))
        progress = callback.call_args[0][0]
        assert isinstance(progress, ThinkingProgress)
        assert progress.ai_type == "mcts"
        assert progress.simulations_completed == 100
        assert progress.total_simulations == 100
        assert 0 < len(progress.top_moves) <= 5
        assert ai.supports_progress is True

    def test_progress_callback_error_is_contained(self):
        """コールバックの例外で探索は止まらない"""
        ai = MCTSAI(iterations=60, seed=9)
        ai.set_progress_callback(Mock(side_effect=RuntimeError("boom")))
        assert ai.select_move(GameEngine(GomokuRule(board_size=5))) is not None

    def test_name(self):
        """名前に探索条件が入る"""
        assert MCTSAI(iterations=500).name == "MCTS (iterations=500)"
        assert MCTSAI(iterations=None, time_limit=1.5).name == "MCTS (time=1.5s)"
        assert MCTSAI().difficulty == "Hard"


class TestAIStrategyFactory:
    """AIStrategyFactoryのテスト"""

    def test_create_by_name(self):
        """名前から作成"""
        assert isinstance(AIStrategyFactory.create("random"), RandomAI)
        assert isinstance(AIStrategyFactory.create("gomoku_rule"), GomokuRuleAI)
        assert isinstance(AIStrategyFactory.create("reversi_rule"), ReversiRuleAI)
        assert isinstance(AIStrategyFactory.create("go_advanced"), GoRuleAI)

    def test_create_mcts_with_params(self):
        """MCTSのパラメータを渡せる"""
        ai = AIStrategyFactory.create("mcts", iterations=500, seed=1)
        assert isinstance(ai, MCTSAI)
        assert ai.name == "MCTS (iterations=500)"

    def test_case_insensitive(self):
        """大文字小文字を区別しない"""
        assert isinstance(AIStrategyFactory.create("MCTS"), MCTSAI)
        assert isinstance(AIStrategyFactory.create("Random"), RandomAI)

    def test_unknown_strategy_raises(self):
        """未知の名前はValueError"""
        with pytest.raises(ValueError):
            AIStrategyFactory.create("minimax")

    def test_for_game(self):
        """ゲーム種別とAI種別から戦略を解決"""
        from game_core import GameType
        factory = AIStrategyFactory
        assert factory.for_game(GameType.GOMOKU, AIType.NONE) is None
        assert isinstance(factory.for_game(GameType.GOMOKU, AIType.RULE), GomokuRuleAI)
        assert isinstance(factory.for_game(GameType.GOMOKU, AIType.ADVANCED), MCTSAI)
        assert factory.for_game(GameType.REVERSI, AIType.ADVANCED).ai_type == AIType.ADVANCED
        assert factory.for_game(GameType.GO, AIType.RULE).ai_type == AIType.RULE
        assert factory.for_game(GameType.GO, AIType.ADVANCED).ai_type == AIType.ADVANCED
        assert isinstance(factory.for_game(GameType.GO, AIType.MCTS), MCTSAI)
        assert isinstance(factory.for_game(GameType.REVERSI, AIType.RANDOM), RandomAI)

    def test_list_available(self):
        """全ての名前から作成できる"""
        for name in AIStrategyFactory.list_available():
            assert AIStrategyFactory.create(name) is not None
