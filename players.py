"""
Variant Board Engine - Player Module

対局者の操作（コントローラ）と対局セッション管理を提供します。

設計原則:
- Controller.get_move() は非同期（async/await）
- AIStrategy は同期メソッド（計算のみ）
- AIController 内で asyncio.to_thread() を使用してスレッド分離し、
  AIには対局のコピーを渡す。選ばれた手は元の対局にセッション側で適用する

クラス構成:
- Controller (ABC): 手を決める主体の抽象基底クラス
- HumanController: 外部（UIなど）からの入力待ち
- AIController: AIStrategy を使用
- GameSession: 非同期の対局ループ
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Callable
import asyncio
import logging

from game_core import AIType, GameRule, GameStatus, GameType, Player, Position, Stone
from game_engine import GameEngine
from ai_strategies import AIStrategy, AIStrategyFactory


logger = logging.getLogger(__name__)


class Controller(ABC):
    """
    手を決める主体の抽象基底クラス

    get_move() が None を返した場合、パスを認めるゲームではパス、
    五目並べでは投了として扱われます。
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """表示名"""
        pass

    @property
    @abstractmethod
    def is_human(self) -> bool:
        pass

    @property
    def ai_type(self) -> AIType:
        """対局に登録するAI種別（人間はNONE）"""
        return AIType.NONE

    @abstractmethod
    async def get_move(self, engine: GameEngine) -> Optional[Position]:
        """
        次の手を決定する（非同期）

        Args:
            engine: 現在の対局

        Returns:
            選択した座標（None はパス／投了）

        Raises:
            asyncio.CancelledError: キャンセルされた場合
        """
        pass

    def cancel(self) -> None:
        """思考・入力待ちの中断要求"""
        pass

    def on_game_start(self, engine: GameEngine, stone: Stone) -> None:
        """ゲーム開始時に呼ばれるフック"""
        pass

    def on_game_end(self, engine: GameEngine, result: GameStatus) -> None:
        """ゲーム終了時に呼ばれるフック"""
        pass


class HumanController(Controller):
    """
    人間の入力を待つコントローラ

    submit() が呼ばれるまで get_move() は待機します。

    使用例:
        human = HumanController("You")

        # UIのクリックハンドラ
        def on_board_click(row, col):
            human.submit(Position(row, col))
    """

    # 入力確認の間隔（秒）
    POLL_INTERVAL = 0.05

    def __init__(self, name: str = "Human"):
        self._name = name
        self._pending: Optional[Position] = None
        self._has_input = False
        self._is_cancelled = False
        self._waiting = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_human(self) -> bool:
        return True

    @property
    def is_waiting(self) -> bool:
        return self._waiting

    async def get_move(self, engine: GameEngine) -> Optional[Position]:
        """入力を待機（タイムアウトは GameSession 側で管理）"""
        self._pending = None
        self._has_input = False
        self._is_cancelled = False
        self._waiting = True

        try:
            while not self._has_input and not self._is_cancelled:
                await asyncio.sleep(self.POLL_INTERVAL)
        finally:
            self._waiting = False

        if self._is_cancelled:
            raise asyncio.CancelledError("Move input was cancelled")

        return self._pending

    def submit(self, position: Optional[Position]) -> None:
        """
        入力された手を渡す（None はパス／投了）

        入力待ちでなければ無視します。
        """
        if self._waiting:
            self._pending = position
            self._has_input = True

    def cancel(self) -> None:
        self._is_cancelled = True
        self._pending = None


class AIController(Controller):
    """
    AIコントローラ

    AIStrategy を使用して手を決定します。
    計算は対局のコピーに対して asyncio.to_thread() で別スレッドで実行します。

    使用例:
        controller = AIController.for_game(GameType.GOMOKU, AIType.MCTS, iterations=500)
        move = await controller.get_move(engine)
    """

    def __init__(self, strategy: AIStrategy, name: Optional[str] = None):
        """
        Args:
            strategy: 使用するAI戦略
            name: 表示名（省略時は戦略名を使用）
        """
        self._strategy = strategy
        self._name = name or f"AI ({strategy.name})"

    @classmethod
    def for_game(
        cls,
        game_type: GameType,
        ai_type: AIType,
        name: Optional[str] = None,
        **kwargs
    ) -> "AIController":
        """
        ゲーム種別とAI種別からコントローラを作成

        Raises:
            ValueError: AIType.NONE を指定した場合
        """
        strategy = AIStrategyFactory.for_game(game_type, ai_type, **kwargs)
        if strategy is None:
            raise ValueError("AIType.NONE has no strategy")
        return cls(strategy, name)

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_human(self) -> bool:
        return False

    @property
    def ai_type(self) -> AIType:
        return self._strategy.ai_type

    @property
    def strategy(self) -> AIStrategy:
        """使用中のAI戦略"""
        return self._strategy

    async def get_move(self, engine: GameEngine) -> Optional[Position]:
        """
        AI戦略を使用して次の手を決定

        計算は対局のコピーに対して別スレッドで実行されるため、
        呼び出し側のイベントループはブロックされません。
        """
        game = engine.copy()
        return await asyncio.to_thread(self._strategy.select_move, game)

    def cancel(self) -> None:
        self._strategy.cancel()


# ----------------------
# ゲームセッション
# ----------------------

@dataclass
class GameSessionConfig:
    """ゲームセッションの設定"""
    move_timeout: Optional[float] = None  # 1手あたりのタイムアウト（秒）
    game_timeout: Optional[float] = None  # ゲーム全体のタイムアウト（秒）
    delay_between_moves: float = 0.0      # 手の間の遅延（秒）- 観戦用


@dataclass
class SessionEvent:
    """
    ゲームセッションイベント

    GameEventとは別に、セッションレベルのイベントを表します。
    （ターン開始、タイムアウト、セッション開始/終了など）
    """
    event_type: str  # "GAME_START", "TURN_START", "MOVE_TIMEOUT", "GAME_END"
    controller: Optional[Controller] = None
    stone: Optional[Stone] = None
    result: Optional[GameStatus] = None
    message: str = ""


# セッションイベントのコールバック型
SessionEventCallback = Callable[[SessionEvent], None]


class GameSession:
    """
    ゲームセッション管理

    コントローラを管理し、非同期ゲームループを実行します。
    人間 vs AI、AI vs AI の両方に対応します。

    使用例:
        rule = GomokuRule()
        black = HumanController("You")
        white = AIController(GomokuRuleAI())

        session = GameSession(rule, black, white)
        result = await session.run_game()
    """

    def __init__(
        self,
        rule: GameRule,
        black: Controller,
        white: Controller,
        config: Optional[GameSessionConfig] = None,
        engine: Optional[GameEngine] = None
    ):
        """
        Args:
            rule: 使用するゲームルール
            black: 黒番のコントローラ
            white: 白番のコントローラ
            config: セッション設定（省略時はデフォルト）
            engine: 既存の対局（省略時は新規作成）
        """
        self._engine = engine or GameEngine(
            rule,
            black=Player(black.name, Stone.BLACK),
            white=Player(white.name, Stone.WHITE),
        )
        self._controllers = {
            Stone.BLACK: black,
            Stone.WHITE: white,
        }
        for stone, controller in self._controllers.items():
            self._engine.set_agent(stone, controller.ai_type)

        self._config = config or GameSessionConfig()
        self._listeners: list[SessionEventCallback] = []
        self._is_running = False
        self._is_cancelled = False

    @property
    def engine(self) -> GameEngine:
        """対局"""
        return self._engine

    @property
    def black(self) -> Controller:
        return self._controllers[Stone.BLACK]

    @property
    def white(self) -> Controller:
        return self._controllers[Stone.WHITE]

    @property
    def current_controller(self) -> Controller:
        """現在の手番のコントローラ"""
        return self._controllers[self._engine.current_turn]

    @property
    def is_running(self) -> bool:
        """ゲームが実行中かどうか"""
        return self._is_running

    def add_listener(self, callback: SessionEventCallback) -> None:
        """セッションイベントリスナーを登録"""
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: SessionEventCallback) -> bool:
        """セッションイベントリスナーを解除"""
        if callback in self._listeners:
            self._listeners.remove(callback)
            return True
        return False

    def _notify_listeners(self, event: SessionEvent) -> None:
        """全リスナーにイベントを通知"""
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Session listener error")

    def cancel(self) -> None:
        """ゲームをキャンセル（思考中のAI・入力待ちも中断）"""
        self._is_cancelled = True
        for controller in self._controllers.values():
            controller.cancel()

    async def run_game(self) -> GameStatus:
        """
        ゲームループを非同期で実行

        Returns:
            ゲーム結果（キャンセル時は ONGOING のまま）

        Raises:
            RuntimeError: ゲームが既に実行中の場合、またはコントローラが不正な手を返した場合
            asyncio.TimeoutError: 1手またはゲーム全体がタイムアウトした場合
        """
        if self._is_running:
            raise RuntimeError("Game is already running")

        self._is_running = True
        self._is_cancelled = False

        try:
            return await self._play()
        finally:
            self._is_running = False

    def _time_budget(self, deadline: Optional[float]) -> Optional[float]:
        """
        次の1手に使える時間（秒）。制限がなければNone

        Raises:
            asyncio.TimeoutError: ゲーム全体の制限時間を過ぎている場合
        """
        budgets = []
        if self._config.move_timeout:
            budgets.append(self._config.move_timeout)
        if deadline is not None:
            remaining = deadline - asyncio.get_running_loop().time()
            if remaining <= 0:
                raise asyncio.TimeoutError("Game timed out")
            budgets.append(remaining)
        return min(budgets) if budgets else None

    async def _play(self) -> GameStatus:
        deadline = None
        if self._config.game_timeout:
            deadline = asyncio.get_running_loop().time() + self._config.game_timeout

        for stone, controller in self._controllers.items():
            controller.on_game_start(self._engine, stone)

        self._engine.start()
        self._notify_listeners(SessionEvent(
            event_type="GAME_START",
            message=self._engine.status_text()
        ))

        while not self._engine.is_game_over and not self._is_cancelled:
            current_stone = self._engine.current_turn
            controller = self._controllers[current_stone]

            self._notify_listeners(SessionEvent(
                event_type="TURN_START",
                controller=controller,
                stone=current_stone
            ))

            try:
                timeout = self._time_budget(deadline)
                if timeout is not None:
                    move = await asyncio.wait_for(
                        controller.get_move(self._engine),
                        timeout=timeout
                    )
                else:
                    move = await controller.get_move(self._engine)
            except asyncio.TimeoutError:
                controller.cancel()
                self._notify_listeners(SessionEvent(
                    event_type="MOVE_TIMEOUT",
                    controller=controller,
                    stone=current_stone,
                    message=f"{controller.name} timed out"
                ))
                raise
            except asyncio.CancelledError:
                # キャンセルされた場合は静かに終了
                break

            if self._is_cancelled:
                break

            self._apply(controller, move)

            # 手の間の遅延（観戦モード用）
            if self._config.delay_between_moves > 0 and not self._engine.is_game_over:
                await asyncio.sleep(self._config.delay_between_moves)

        result = self._engine.status

        for controller in self._controllers.values():
            controller.on_game_end(self._engine, result)

        self._notify_listeners(SessionEvent(
            event_type="GAME_END",
            result=result,
            message=self._engine.status_text()
        ))

        return result

    def _apply(self, controller: Controller, move: Optional[Position]) -> None:
        """コントローラの手を対局に適用"""
        if move is None:
            if self._engine.rule.allows_pass:
                accepted = self._engine.pass_turn()
            else:
                accepted = self._engine.resign(self._engine.current_player)
        else:
            accepted = self._engine.play_move(move.row, move.col)

        if not accepted:
            logger.warning("%s returned an illegal move: %s", controller.name, move)
            raise RuntimeError(f"Invalid move by {controller.name}: {move}")

    def reset(self) -> None:
        """ゲームをリセット"""
        if self._is_running:
            self.cancel()
        self._engine.reset()
        self._is_cancelled = False
