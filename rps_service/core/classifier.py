"""
手势分类器接口
输入 NxNx3 归一化张量，输出 [rock, paper, scissors] 概率分布
"""

import cv2
import numpy as np

from .errors import CaptureUnavailable, InferenceFailure, RPSError
from .gesture import CLASSES, PredictionResult
from .preprocess import preprocess_image


def softmax(logits: np.ndarray) -> np.ndarray:
    """数值稳定的 softmax"""
    shifted = logits - np.max(logits)
    exp = np.exp(shifted)
    return exp / exp.sum()


class Classifier:
    """
    分类器基类
    子类实现 _predict_proba，基类负责形状检查和结果校验
    """

    name = "classifier"

    def __init__(self, input_size: int):
        self.input_size = input_size

    @property
    def input_shape(self):
        return (self.input_size, self.input_size, 3)

    def _check_input(self, tensor: np.ndarray) -> np.ndarray:
        """接受 NxNx3 或 1xNxNx3，返回带 batch 维度的张量"""
        array = np.asarray(tensor, dtype=np.float32)
        if array.shape == self.input_shape:
            array = array[np.newaxis, ...]
        if array.shape != (1,) + self.input_shape:
            raise InferenceFailure(
                f"tensor shape {array.shape} does not match model input {self.input_shape}"
            )
        return array

    def _predict_proba(self, batch: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def predict_proba(self, tensor: np.ndarray) -> np.ndarray:
        """返回长度为 3 的概率向量"""
        batch = self._check_input(tensor)
        try:
            proba = self._predict_proba(batch)
        except RPSError:
            raise
        except Exception as e:
            # 推理后端的任何异常都只中止当前回合
            raise InferenceFailure(f"{self.name} backend failed: {e}") from e
        return np.asarray(proba, dtype=np.float64).reshape(-1)

    def predict(self, tensor: np.ndarray) -> PredictionResult:
        """推理并取 arg-max"""
        return PredictionResult.from_probabilities(self.predict_proba(tensor))


class FallbackClassifier(Classifier):
    """
    后备分类器
    模型文件不可用时使用；与真实模型输入输出形状一致，预测结果任意但合法
    固定随机种子的线性投影 + softmax
    """

    name = "fallback"

    def __init__(self, input_size: int, seed: int = 0):
        super().__init__(input_size)
        rng = np.random.default_rng(seed)
        features = input_size * input_size * 3
        self._weights = rng.normal(0.0, 1.0 / np.sqrt(features), size=(features, len(CLASSES)))

    def _predict_proba(self, batch: np.ndarray) -> np.ndarray:
        logits = batch.reshape(1, -1).astype(np.float64) @ self._weights
        return softmax(logits[0])


def predict_image(path: str, classifier: Classifier) -> PredictionResult:
    """
    对整张静态图片推理（不做手部定位）

    Raises:
        CaptureUnavailable: 图片无法读取
    """
    image = cv2.imread(path, cv2.IMREAD_COLOR)
    if image is None:
        raise CaptureUnavailable(f"cannot read image: {path}")
    return classifier.predict(preprocess_image(image, classifier.input_size))
