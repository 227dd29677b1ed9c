"""
手势与胜负判定模块
定义石头/布/剪刀手势、预测结果和胜负规则
"""

import numpy as np
from typing import Dict, Sequence, Tuple
from dataclasses import dataclass
from enum import Enum

from .errors import InferenceFailure


class Gesture(Enum):
    """手势类型枚举"""
    ROCK = "rock"           # 石头
    PAPER = "paper"         # 布
    SCISSORS = "scissors"   # 剪刀


# 固定类别顺序：训练标签和推理输出都按此顺序
CLASSES: Tuple[Gesture, ...] = (Gesture.ROCK, Gesture.PAPER, Gesture.SCISSORS)

# 概率和的容差
PROBA_TOLERANCE = 1e-5


class RoundOutcome(Enum):
    """回合结果（玩家视角）"""
    WIN = "win"
    LOSE = "lose"
    TIE = "tie"


# 每个手势能赢的手势
_BEATS: Dict[Gesture, Gesture] = {
    Gesture.ROCK: Gesture.SCISSORS,
    Gesture.PAPER: Gesture.ROCK,
    Gesture.SCISSORS: Gesture.PAPER,
}


def determine_winner(player: Gesture, computer: Gesture) -> RoundOutcome:
    """
    判定一局胜负

    Args:
        player: 玩家手势
        computer: 电脑手势

    Returns:
        玩家视角的 RoundOutcome
    """
    if player == computer:
        return RoundOutcome.TIE
    return RoundOutcome.WIN if _BEATS[player] == computer else RoundOutcome.LOSE


def validate_probabilities(probabilities: Sequence[float]) -> np.ndarray:
    """
    检查分类器输出：恰好 3 个非负值，和为 1

    Raises:
        InferenceFailure: 输出不合法
    """
    proba = np.asarray(probabilities, dtype=np.float64).reshape(-1)

    if proba.shape[0] != len(CLASSES):
        raise InferenceFailure(
            f"expected {len(CLASSES)} probabilities, got {proba.shape[0]}"
        )
    if not np.all(np.isfinite(proba)) or np.any(proba < 0):
        raise InferenceFailure(f"invalid probabilities: {proba.tolist()}")
    if abs(float(proba.sum()) - 1.0) > PROBA_TOLERANCE:
        raise InferenceFailure(f"probabilities sum to {proba.sum():.6f}")

    return proba


@dataclass
class PredictionResult:
    """单次推理结果"""
    gesture: Gesture
    confidence: float
    probabilities: Tuple[float, float, float]

    @classmethod
    def from_probabilities(cls, probabilities: Sequence[float]) -> "PredictionResult":
        """从概率向量创建（取 arg-max）"""
        proba = validate_probabilities(probabilities)
        index = int(np.argmax(proba))
        return cls(
            gesture=CLASSES[index],
            confidence=float(proba[index]),
            probabilities=tuple(float(p) for p in proba)
        )

    def to_dict(self) -> Dict:
        return {
            "gesture": self.gesture.value,
            "confidence": self.confidence,
            "probabilities": {
                g.value: p for g, p in zip(CLASSES, self.probabilities)
            }
        }
