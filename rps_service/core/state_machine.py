"""
回合状态机模块
负责一局的采集、定位、分类、判定和计分，并通过回调通知观察者
"""

import time
import random
import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple
from dataclasses import dataclass, field, replace
from enum import Enum

import numpy as np

from .errors import CaptureUnavailable, InvalidRegion, RoundError
from .gesture import CLASSES, Gesture, PredictionResult, RoundOutcome, determine_winner
from .preprocess import preprocess_image
from .region import BoundingRegion

logger = logging.getLogger(__name__)


class RoundState(Enum):
    """回合状态枚举"""
    IDLE = "idle"                 # 空闲，可开始新回合
    CAPTURING = "capturing"       # 正在获取帧
    LOCATING = "locating"         # 正在定位手部
    CLASSIFYING = "classifying"   # 正在推理
    RESOLVED = "resolved"         # 已判定胜负


@dataclass
class Score:
    """比分：每个完成的回合恰好一个字段 +1"""
    player: int = 0
    computer: int = 0
    ties: int = 0

    def record(self, outcome: RoundOutcome):
        if outcome == RoundOutcome.WIN:
            self.player += 1
        elif outcome == RoundOutcome.LOSE:
            self.computer += 1
        else:
            self.ties += 1

    @property
    def total(self) -> int:
        return self.player + self.computer + self.ties

    def to_dict(self) -> Dict[str, int]:
        return {"player": self.player, "computer": self.computer, "ties": self.ties}


@dataclass
class RoundResult:
    """一局的结果"""
    round_id: int
    player: PredictionResult
    computer: Gesture
    outcome: RoundOutcome
    region: BoundingRegion
    hand_detected: bool
    score: Score

    def to_dict(self) -> Dict:
        return {
            "round_id": self.round_id,
            "player": self.player.to_dict(),
            "computer": self.computer.value,
            "outcome": self.outcome.value,
            "region": self.region.to_dict(),
            "hand_detected": self.hand_detected,
            "score": self.score.to_dict()
        }


@dataclass
class RoundEvent:
    """回合事件"""
    event_type: str          # "state" | "resolved" | "aborted"
    round_id: int            # 回合序号
    state: RoundState        # 事件发生时的状态
    timestamp: float         # 时间戳（毫秒）
    data: Dict = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "event_type": self.event_type,
            "round_id": self.round_id,
            "state": self.state.value,
            "timestamp": self.timestamp,
            "data": self.data
        }


class RoundController:
    """
    回合控制器

    状态转换: IDLE -> CAPTURING -> LOCATING -> CLASSIFYING -> RESOLVED -> IDLE
    同一时刻最多一局在进行；进行中的触发直接丢弃，不排队。
    任一步失败都中止本局，比分不变，回到 IDLE。
    """

    def __init__(
        self,
        source,
        locator,
        classifier,
        input_size: Optional[int] = None,
        fallback_fraction: float = 0.6,
        computer_strategy: Optional[Callable[[], Gesture]] = None,
        rng: Optional[random.Random] = None,
        read_timeout: float = 1.0
    ):
        """
        Args:
            source: 图像源，提供 read(timeout) -> Optional[Frame] 和 is_running
            locator: 手部定位器，提供 locate(image) -> Optional[HandLocation]；None 表示总用中心区域
            classifier: 分类器，提供 predict(tensor) -> PredictionResult 和 input_size
            input_size: 预处理边长，必须与分类器输入一致，默认取分类器的
            fallback_fraction: 中心后备方块占短边比例
            computer_strategy: 电脑出拳策略，默认均匀随机
            rng: 默认策略使用的随机数生成器
            read_timeout: 读帧超时（秒）
        """
        if input_size is None:
            input_size = classifier.input_size
        elif input_size != classifier.input_size:
            raise ValueError(
                f"preprocess size {input_size} does not match classifier input "
                f"size {classifier.input_size}"
            )

        self.source = source
        self.locator = locator
        self.classifier = classifier
        self.input_size = input_size
        self.fallback_fraction = fallback_fraction
        self.read_timeout = read_timeout

        self._rng = rng or random.Random()
        self._computer_strategy = computer_strategy or (lambda: self._rng.choice(CLASSES))

        # 进行中保护
        self._guard = threading.Lock()
        self._score_lock = threading.Lock()

        self._state = RoundState.IDLE
        self._score = Score()
        self._round_counter = 0
        self._rounds_played = 0

        # 最近一次定位结果（供预览叠加骨骼）
        self.last_location = None

        self._callbacks: List[Callable[[RoundEvent], None]] = []

    def register_callback(self, callback: Callable[[RoundEvent], None]):
        """注册事件回调"""
        self._callbacks.append(callback)

    def _emit_event(self, event: RoundEvent):
        """发送事件"""
        for callback in self._callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.warning("事件回调异常: %s", e)

    def _set_state(self, state: RoundState, round_id: int):
        self._state = state
        self._emit_event(RoundEvent(
            event_type="state",
            round_id=round_id,
            state=state,
            timestamp=time.time() * 1000
        ))

    def play_round(self, trigger: str = "manual") -> Optional[RoundResult]:
        """
        进行一局

        Args:
            trigger: 触发来源（"timer" / "manual"），仅用于日志

        Returns:
            RoundResult；图像源未启动、已有回合进行中或本局中止时返回 None
        """
        if not self.source.is_running:
            logger.debug("图像源未启动，忽略触发 (%s)", trigger)
            return None

        if not self._guard.acquire(blocking=False):
            logger.debug("回合进行中，忽略触发 (%s)", trigger)
            return None

        self._round_counter += 1
        round_id = self._round_counter

        try:
            return self._run_round(round_id)
        except RoundError as e:
            logger.warning("第 %d 局中止 [%s]: %s", round_id, e.kind, e)
            self._emit_event(RoundEvent(
                event_type="aborted",
                round_id=round_id,
                state=self._state,
                timestamp=time.time() * 1000,
                data={"error": e.kind, "message": str(e)}
            ))
            return None
        finally:
            self._set_state(RoundState.IDLE, round_id)
            self._guard.release()

    def _run_round(self, round_id: int) -> RoundResult:
        # 采集
        self._set_state(RoundState.CAPTURING, round_id)
        frame = self.source.read(timeout=self.read_timeout)
        if frame is None or frame.image is None:
            raise CaptureUnavailable("no frame available")
        image = frame.image

        # 定位
        self._set_state(RoundState.LOCATING, round_id)
        height, width = image.shape[:2]
        fallback = BoundingRegion.centered_square(width, height, self.fallback_fraction)
        location = self._locate(image)
        self.last_location = location
        region = location.region if location is not None else fallback

        # 分类
        self._set_state(RoundState.CLASSIFYING, round_id)
        tensor, region = self._preprocess(image, region, fallback)
        prediction = self.classifier.predict(tensor)

        # 判定与计分
        computer = self._computer_strategy()
        outcome = determine_winner(prediction.gesture, computer)

        with self._score_lock:
            self._score.record(outcome)
            snapshot = replace(self._score)
            self._rounds_played += 1

        result = RoundResult(
            round_id=round_id,
            player=prediction,
            computer=computer,
            outcome=outcome,
            region=region,
            hand_detected=region is not fallback,
            score=snapshot
        )

        self._set_state(RoundState.RESOLVED, round_id)
        logger.info("第 %d 局: 玩家 (%s %.2f) vs 电脑 (%s) = %s",
                    round_id, prediction.gesture.value, prediction.confidence,
                    computer.value, outcome.value.upper())
        logger.info("比分: 玩家 %d - 电脑 %d - 平局 %d",
                    snapshot.player, snapshot.computer, snapshot.ties)

        self._emit_event(RoundEvent(
            event_type="resolved",
            round_id=round_id,
            state=RoundState.RESOLVED,
            timestamp=time.time() * 1000,
            data=result.to_dict()
        ))
        return result

    def _locate(self, image: np.ndarray):
        """定位手部；失败按未检测到处理"""
        if self.locator is None:
            return None
        try:
            return self.locator.locate(image)
        except Exception as e:
            logger.warning("手部定位失败，使用中心区域: %s", e)
            return None

    def _preprocess(
        self,
        image: np.ndarray,
        region: BoundingRegion,
        fallback: BoundingRegion
    ) -> Tuple[np.ndarray, BoundingRegion]:
        """裁剪区域退化时退回中心区域"""
        try:
            return preprocess_image(image, self.input_size, region), region
        except InvalidRegion:
            if region is fallback:
                raise
            logger.debug("手部区域退化，改用中心区域")
            return preprocess_image(image, self.input_size, fallback), fallback

    @property
    def state(self) -> RoundState:
        return self._state

    @property
    def score(self) -> Score:
        """比分副本"""
        with self._score_lock:
            return replace(self._score)

    @property
    def in_flight(self) -> bool:
        return self._guard.locked()

    @property
    def rounds_played(self) -> int:
        """已完成（RESOLVED）的局数"""
        return self._rounds_played
