"""
RPS 核心模块
包含预处理、手势判定、分类器接口、回合状态机等核心功能
依赖 MediaPipe / TensorFlow 的模块（detector、model）按需单独导入
"""

from .capture import CameraCapture, StaticImageSource, Frame
from .classifier import Classifier, FallbackClassifier
from .errors import (
    RPSError,
    RoundError,
    InvalidRegion,
    CaptureUnavailable,
    InferenceFailure,
    ClassifierUnavailable,
)
from .gesture import CLASSES, Gesture, PredictionResult, RoundOutcome, determine_winner
from .preprocess import preprocess_image
from .region import BoundingRegion
from .state_machine import RoundController, RoundState, Score

__all__ = [
    "CameraCapture",
    "StaticImageSource",
    "Frame",
    "Classifier",
    "FallbackClassifier",
    "RPSError",
    "RoundError",
    "InvalidRegion",
    "CaptureUnavailable",
    "InferenceFailure",
    "ClassifierUnavailable",
    "CLASSES",
    "Gesture",
    "PredictionResult",
    "RoundOutcome",
    "determine_winner",
    "preprocess_image",
    "BoundingRegion",
    "RoundController",
    "RoundState",
    "Score",
]
