"""
图像预处理模块
裁剪 -> 最近邻缩放 -> RGB -> 归一化到 [0, 1]
训练与推理共用同一函数，保证尺寸和插值方式一致
"""

import cv2
import numpy as np
from typing import Optional, Tuple, Union

from .errors import InvalidRegion
from .region import BoundingRegion


# 训练和推理统一使用的插值方式
INTERPOLATION = cv2.INTER_NEAREST

PixelBox = Tuple[int, int, int, int]


def crop_image(
    image: np.ndarray,
    region: Optional[Union[BoundingRegion, PixelBox]] = None
) -> np.ndarray:
    """
    按区域裁剪图像

    Args:
        image: HxWx3 图像
        region: BoundingRegion（归一化）或像素框 (x0, y0, x1, y1)，None 表示整幅图

    Raises:
        InvalidRegion: 图像或裁剪结果宽/高为 0
    """
    if image is None or image.ndim != 3 or image.shape[0] == 0 or image.shape[1] == 0:
        raise InvalidRegion("image is empty")

    height, width = image.shape[:2]

    if region is None:
        return image

    if isinstance(region, BoundingRegion):
        x0, y0, x1, y1 = region.to_pixels(width, height)
    else:
        x0, y0, x1, y1 = (int(v) for v in region)
        x0, x1 = max(0, x0), min(width, x1)
        y0, y1 = max(0, y0), min(height, y1)

    if x1 <= x0 or y1 <= y0:
        raise InvalidRegion(f"degenerate crop ({x0}, {y0}, {x1}, {y1})")

    return image[y0:y1, x0:x1]


def preprocess_image(
    image: np.ndarray,
    size: int,
    region: Optional[Union[BoundingRegion, PixelBox]] = None,
    color_order: str = "bgr"
) -> np.ndarray:
    """
    生成 size x size x 3 的 float32 张量，取值 [0, 1]

    Args:
        image: HxWx3 uint8 图像
        size: 目标边长 N
        region: 可选裁剪区域
        color_order: 输入通道顺序，"bgr"（OpenCV）或 "rgb"

    Returns:
        NxNx3 float32 张量（RGB 顺序）
    """
    if image is not None and image.ndim == 3 and image.shape[2] == 4:
        image = image[:, :, :3]

    cropped = crop_image(image, region)

    if cropped.shape[2] != 3:
        raise InvalidRegion(f"expected 3 color channels, got {cropped.shape[2]}")

    resized = cv2.resize(cropped, (size, size), interpolation=INTERPOLATION)

    if color_order == "bgr":
        resized = cv2.cvtColor(resized, cv2.COLOR_BGR2RGB)

    return resized.astype(np.float32) / 255.0


def to_batch(tensor: np.ndarray) -> np.ndarray:
    """添加 batch 维度 [1, N, N, 3]"""
    return np.expand_dims(tensor, axis=0)
