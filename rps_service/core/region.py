"""
包围区域模块
手部包围盒（归一化坐标）与中心后备区域
"""

import numpy as np
from typing import Dict, Tuple
from dataclasses import dataclass


@dataclass(frozen=True)
class BoundingRegion:
    """
    归一化矩形区域
    x, y, width, height 均为相对帧尺寸的比例 [0, 1]
    """
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_landmarks(cls, landmarks: np.ndarray, padding: float = 0.1) -> "BoundingRegion":
        """
        由关键点计算包围盒，并按手部尺寸外扩

        Args:
            landmarks: Nx2 或 Nx3 归一化关键点
            padding: 每侧外扩比例（相对包围盒宽/高）
        """
        points = np.asarray(landmarks, dtype=np.float64)
        min_x = max(0.0, min(1.0, float(points[:, 0].min())))
        min_y = max(0.0, min(1.0, float(points[:, 1].min())))
        max_x = max(0.0, min(1.0, float(points[:, 0].max())))
        max_y = max(0.0, min(1.0, float(points[:, 1].max())))

        width = max_x - min_x
        height = max_y - min_y

        return cls(
            x=max(0.0, min_x - padding * width),
            y=max(0.0, min_y - padding * height),
            width=min(1.0, width + 2 * padding * width),
            height=min(1.0, height + 2 * padding * height)
        )

    @classmethod
    def centered_square(
        cls,
        frame_width: int,
        frame_height: int,
        fraction: float = 0.6
    ) -> "BoundingRegion":
        """
        中心方块后备区域
        边长为短边的 fraction 倍（像素意义上的正方形）
        """
        if frame_width <= 0 or frame_height <= 0:
            return cls(0.5, 0.5, 0.0, 0.0)

        side = min(frame_width, frame_height) * fraction
        width = side / frame_width
        height = side / frame_height
        return cls(
            x=(1.0 - width) / 2,
            y=(1.0 - height) / 2,
            width=width,
            height=height
        )

    @property
    def area(self) -> float:
        return self.width * self.height

    def to_pixels(self, frame_width: int, frame_height: int) -> Tuple[int, int, int, int]:
        """
        转换为像素裁剪框 (x0, y0, x1, y1)，并限制在帧内
        """
        x0 = int(round(self.x * frame_width))
        y0 = int(round(self.y * frame_height))
        x1 = int(round((self.x + self.width) * frame_width))
        y1 = int(round((self.y + self.height) * frame_height))

        x0 = min(max(x0, 0), frame_width)
        y0 = min(max(y0, 0), frame_height)
        x1 = min(max(x1, x0), frame_width)
        y1 = min(max(y1, y0), frame_height)
        return x0, y0, x1, y1

    def to_dict(self) -> Dict[str, float]:
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height
        }
