"""
Variant Board Engine - Configuration Module

エンジン全体の設定値をまとめたデータクラスを提供します。

キーはドット区切り（"go.komi" など）で読み書きでき、
JSONファイルなどから読み込んだ辞書をそのまま from_dict() に渡せます。
"""

from dataclasses import asdict, dataclass, fields
from typing import Any, Optional

from game_core import AIType, GameRule, GameType, GomokuRule, GoRule, Player, ReversiRule
from game_engine import GameEngine
from ai_strategies import AIStrategy, AIStrategyFactory


# =============================================================================
# 設定
# =============================================================================

@dataclass
class EngineConfig:
    """エンジン設定"""
    # 囲碁
    go_komi: float = 6.5
    go_board_size: int = 19

    # 五目並べ
    gomoku_board_size: int = 15

    # MCTS
    mcts_iterations: int = 1000
    mcts_time_limit_ms: int = 2000     # 0 で時間制限なし
    mcts_exploration_c: float = 1.4142135623730951
    mcts_rollout_cap: int = 100

    # 棋譜
    recorder_snapshot_stride: int = 10

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """
        値の範囲をチェック

        Raises:
            ValueError: 範囲外の値がある場合
        """
        if not 9 <= self.go_board_size <= 19:
            raise ValueError(f"go.board_size must be in [9, 19]: {self.go_board_size}")
        if not 8 <= self.gomoku_board_size <= 19:
            raise ValueError(f"gomoku.board_size must be in [8, 19]: {self.gomoku_board_size}")
        if self.go_komi < 0:
            raise ValueError(f"go.komi must not be negative: {self.go_komi}")
        if self.mcts_iterations < 1:
            raise ValueError(f"mcts.iterations must be positive: {self.mcts_iterations}")
        if self.mcts_time_limit_ms < 0:
            raise ValueError(f"mcts.time_limit_ms must not be negative: {self.mcts_time_limit_ms}")
        if self.mcts_exploration_c <= 0:
            raise ValueError(f"mcts.exploration_c must be positive: {self.mcts_exploration_c}")
        if self.mcts_rollout_cap < 1:
            raise ValueError(f"mcts.rollout_cap must be positive: {self.mcts_rollout_cap}")
        if self.recorder_snapshot_stride < 1:
            raise ValueError(
                f"recorder.snapshot_stride must be positive: {self.recorder_snapshot_stride}"
            )

    @property
    def mcts_time_limit(self) -> Optional[float]:
        """MCTSの時間制限（秒、制限なしはNone）"""
        if self.mcts_time_limit_ms <= 0:
            return None
        return self.mcts_time_limit_ms / 1000

    def to_dict(self) -> dict[str, Any]:
        """ドット区切りキーの辞書に変換（例: {"go.komi": 6.5, ...}）"""
        return {key.replace("_", ".", 1): value for key, value in asdict(self).items()}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "EngineConfig":
        """
        辞書から復元

        "go.komi" と "go_komi" のどちらの書き方も受け付け、未知のキーは無視します。

        Raises:
            ValueError: 範囲外の値がある場合
        """
        valid_keys = {f.name for f in fields(cls)}
        normalized = {key.replace(".", "_"): value for key, value in d.items()}
        filtered = {k: v for k, v in normalized.items() if k in valid_keys}
        return cls(**filtered)

    # =========================================================================
    # 設定から各オブジェクトを作成
    # =========================================================================

    def create_rule(self, game_type: GameType) -> GameRule:
        """設定を反映したルールを作成"""
        if game_type == GameType.GO:
            return GoRule(board_size=self.go_board_size, komi=self.go_komi)
        if game_type == GameType.GOMOKU:
            return GomokuRule(board_size=self.gomoku_board_size)
        return ReversiRule()

    def create_engine(
        self,
        game_type: GameType,
        black: Optional[Player] = None,
        white: Optional[Player] = None,
        title: str = ""
    ) -> GameEngine:
        """設定を反映した対局を作成"""
        return GameEngine(
            self.create_rule(game_type),
            black=black,
            white=white,
            snapshot_stride=self.recorder_snapshot_stride,
            title=title,
        )

    def create_strategy(
        self,
        game_type: GameType,
        ai_type: AIType,
        seed: Optional[int] = None
    ) -> Optional[AIStrategy]:
        """設定を反映したAI戦略を作成（AIType.NONE はNone）"""
        return AIStrategyFactory.for_game(
            game_type,
            ai_type,
            iterations=self.mcts_iterations,
            time_limit=self.mcts_time_limit,
            exploration=self.mcts_exploration_c,
            rollout_cap=self.mcts_rollout_cap,
            seed=seed,
        )
