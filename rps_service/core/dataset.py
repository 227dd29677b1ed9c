"""
数据集模块
目录结构: <root>/{rock,paper,scissors}/*.png
"""

import os
import logging
import numpy as np
import cv2
from typing import List, Optional, Tuple

from .gesture import CLASSES
from .preprocess import preprocess_image

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg")


def list_class_images(root: str) -> List[Tuple[str, int]]:
    """
    列出所有图片及其类别索引（按 CLASSES 顺序，目录内按文件名排序）

    Raises:
        FileNotFoundError: 缺少某个类别目录
    """
    samples = []
    for label, gesture in enumerate(CLASSES):
        class_dir = os.path.join(root, gesture.value)
        if not os.path.isdir(class_dir):
            raise FileNotFoundError(f"Dataset folder not found: {class_dir}")

        for name in sorted(os.listdir(class_dir)):
            if name.lower().endswith(IMAGE_EXTENSIONS):
                samples.append((os.path.join(class_dir, name), label))
    return samples


def load_dataset(root: str, size: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    加载数据集

    Args:
        root: 数据集根目录
        size: 预处理边长 N（与推理一致）

    Returns:
        (x, y): x 为 (n, N, N, 3) float32，y 为 (n, 3) one-hot
    """
    images = []
    labels = []

    for path, label in list_class_images(root):
        image = cv2.imread(path, cv2.IMREAD_COLOR)
        if image is None:
            logger.warning("无法读取图片，已跳过: %s", path)
            continue
        images.append(preprocess_image(image, size))
        labels.append(label)

    x = np.stack(images).astype(np.float32) if images else np.zeros((0, size, size, 3), np.float32)
    y = np.eye(len(CLASSES), dtype=np.float32)[np.array(labels, dtype=np.int64)]

    counts = ", ".join(
        f"{g.value}:{labels.count(i)}" for i, g in enumerate(CLASSES)
    )
    logger.info("数据集已加载: %d 个样本 (%s)", len(labels), counts)
    return x, y


def find_sample_image(root: str) -> Optional[str]:
    """按类别顺序返回找到的第一张图片"""
    for gesture in CLASSES:
        class_dir = os.path.join(root, gesture.value)
        if not os.path.isdir(class_dir):
            continue
        for name in sorted(os.listdir(class_dir)):
            if name.lower().endswith(IMAGE_EXTENSIONS):
                return os.path.join(class_dir, name)
    return None
