"""
叠加绘制模块
在帧上绘制手部骨骼、包围盒和回合信息
"""

import cv2
import numpy as np
from typing import List, Optional


# 骨骼连接定义（MediaPipe 21 点）
HAND_CONNECTIONS = [
    (0, 1), (1, 2), (2, 3), (3, 4),        # 大拇指
    (0, 5), (5, 6), (6, 7), (7, 8),        # 食指
    (0, 9), (9, 10), (10, 11), (11, 12),   # 中指
    (0, 13), (13, 14), (14, 15), (15, 16), # 无名指
    (0, 17), (17, 18), (18, 19), (19, 20), # 小指
    # 手掌横向连接
    (5, 9), (9, 13), (13, 17)
]


def draw_landmarks(
    image: np.ndarray,
    location,
    line_color=(0, 255, 0),     # 绿色连线
    point_color=(0, 0, 255),    # 红色关键点
    thickness: int = 3,
    circle_radius: int = 4,
    draw_region: bool = False
) -> np.ndarray:
    """
    在图像上绘制手部骨骼

    Args:
        image: 原始 BGR 图像
        location: HandLocation（需要 landmarks 和 region），None 时原样返回副本
        draw_region: 是否同时绘制包围盒

    Returns:
        绘制后的图像
    """
    output = image.copy()
    if location is None:
        return output

    height, width = output.shape[:2]
    points = [
        (int(x * width), int(y * height))
        for x, y in np.asarray(location.landmarks)[:, :2]
    ]

    for start_idx, end_idx in HAND_CONNECTIONS:
        if start_idx < len(points) and end_idx < len(points):
            cv2.line(output, points[start_idx], points[end_idx],
                     line_color, thickness, cv2.LINE_AA)

    for point in points:
        cv2.circle(output, point, circle_radius, point_color, -1)
        # 白色描边
        cv2.circle(output, point, circle_radius, (255, 255, 255), 1)

    if draw_region:
        x0, y0, x1, y1 = location.region.to_pixels(width, height)
        cv2.rectangle(output, (x0, y0), (x1, y1), (255, 255, 0), 1)

    return output


def draw_info(
    image: np.ndarray,
    lines: List[str],
    origin=(10, 25),
    highlight: Optional[str] = None
) -> np.ndarray:
    """逐行绘制状态文字；包含 highlight 的行用绿色"""
    x, y = origin
    for line in lines:
        color = (0, 255, 0) if highlight and highlight in line else (255, 255, 255)
        cv2.putText(image, line, (x, y), cv2.FONT_HERSHEY_SIMPLEX, 0.5, color, 1)
        y += 20
    return image
