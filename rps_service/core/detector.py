"""
手部定位模块
使用 MediaPipe Hands 检测单只手，输出包围区域和关键点
"""

import cv2
import numpy as np
import mediapipe as mp
from typing import Optional
from dataclasses import dataclass
import logging
import threading

from .region import BoundingRegion

logger = logging.getLogger(__name__)


@dataclass
class HandLocation:
    """单手定位结果"""
    region: BoundingRegion        # 外扩后的包围盒（归一化）
    landmarks: np.ndarray         # 21x3 关键点坐标 (归一化)
    handedness: str               # 左手/右手
    confidence: float             # 检测置信度


class HandDetector:
    """
    手部定位器
    封装 MediaPipe Hands；选项在构造时确定，会话中不可修改
    """

    def __init__(
        self,
        max_num_hands: int = 1,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
        model_complexity: int = 0,
        padding: float = 0.1
    ):
        """
        初始化定位器

        Args:
            max_num_hands: 最大检测手数
            min_detection_confidence: 检测置信度阈值
            min_tracking_confidence: 追踪置信度阈值
            model_complexity: 模型复杂度 (0=lite, 1=full)
            padding: 包围盒外扩比例
        """
        self.max_num_hands = max_num_hands
        self.min_detection_confidence = min_detection_confidence
        self.min_tracking_confidence = min_tracking_confidence
        self.model_complexity = model_complexity
        self.padding = padding

        # MediaPipe 图实例不可并发调用（预览循环与回合线程共用）
        self._lock = threading.Lock()

        self._hands = mp.solutions.hands.Hands(
            static_image_mode=False,
            max_num_hands=max_num_hands,
            min_detection_confidence=min_detection_confidence,
            min_tracking_confidence=min_tracking_confidence,
            model_complexity=model_complexity
        )
        logger.debug("手部定位器已初始化: max_num_hands=%d, complexity=%d",
                     max_num_hands, model_complexity)

    def locate(self, image: np.ndarray) -> Optional[HandLocation]:
        """
        定位一只手

        Args:
            image: BGR 格式图像

        Returns:
            HandLocation，未检测到手时返回 None
        """
        image_rgb = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
        image_rgb.flags.writeable = False
        with self._lock:
            results = self._hands.process(image_rgb)

        if not results.multi_hand_landmarks:
            return None

        hand_landmarks = results.multi_hand_landmarks[0]
        landmarks = np.array([
            [lm.x, lm.y, lm.z]
            for lm in hand_landmarks.landmark
        ])

        handedness = "unknown"
        confidence = 0.0
        if results.multi_handedness:
            classification = results.multi_handedness[0].classification[0]
            handedness = classification.label
            confidence = float(classification.score)

        return HandLocation(
            region=BoundingRegion.from_landmarks(landmarks, self.padding),
            landmarks=landmarks,
            handedness=handedness,
            confidence=confidence
        )

    def close(self):
        """释放资源"""
        with self._lock:
            self._hands.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

