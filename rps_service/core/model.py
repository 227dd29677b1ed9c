"""
Keras 模型模块
小型 CNN 结构定义、模型加载与推理封装
"""

import os
import logging
import numpy as np
import tensorflow as tf
from tensorflow.keras import layers, models

from .classifier import Classifier, FallbackClassifier
from .errors import ClassifierUnavailable, InferenceFailure
from .gesture import CLASSES

logger = logging.getLogger(__name__)


def build_model(input_size: int = 16, learning_rate: float = 0.001) -> tf.keras.Model:
    """
    构建快速 CNN（16x16 输入约 6.5K 参数）

    Args:
        input_size: 输入边长 N
        learning_rate: Adam 学习率
    """
    model = models.Sequential([
        layers.Input(shape=(input_size, input_size, 3)),
        layers.Conv2D(8, kernel_size=3, activation="relu"),
        layers.MaxPooling2D(pool_size=2),
        layers.Flatten(),
        layers.Dense(16, activation="relu"),
        layers.Dense(len(CLASSES), activation="softmax"),
    ])
    model.compile(
        optimizer=tf.keras.optimizers.Adam(learning_rate=learning_rate),
        loss="categorical_crossentropy",
        metrics=["accuracy"],
    )
    return model


class KerasClassifier(Classifier):
    """已训练 Keras 模型的推理封装"""

    name = "keras"

    def __init__(self, model: tf.keras.Model, input_size: int):
        expected = (input_size, input_size, 3)
        actual = tuple(model.input_shape[1:])
        if actual != expected:
            raise ClassifierUnavailable(
                f"model input shape {actual} does not match preprocess size {expected}"
            )
        output = model.output_shape[-1]
        if output != len(CLASSES):
            raise ClassifierUnavailable(f"model has {output} outputs, expected {len(CLASSES)}")

        super().__init__(input_size)
        self.model = model

    def _predict_proba(self, batch: np.ndarray) -> np.ndarray:
        try:
            prediction = self.model.predict(batch, verbose=0)
        except (tf.errors.OpError, ValueError) as e:
            raise InferenceFailure(f"model inference failed: {e}") from e
        return prediction[0]


def load_keras_classifier(path: str, input_size: int) -> KerasClassifier:
    """
    加载模型文件

    Raises:
        ClassifierUnavailable: 文件缺失、加载失败或形状不匹配
    """
    if not os.path.exists(path):
        raise ClassifierUnavailable(f"model file not found: {path}")

    try:
        model = tf.keras.models.load_model(path, compile=False)
    except (OSError, ValueError) as e:
        raise ClassifierUnavailable(f"cannot load model {path}: {e}") from e

    return KerasClassifier(model, input_size)


def load_classifier(path: str, input_size: int) -> Classifier:
    """
    加载分类器；不可用时替换为后备分类器（不作为回合错误上报）
    """
    try:
        classifier = load_keras_classifier(path, input_size)
    except ClassifierUnavailable as e:
        logger.warning("%s", e)
        logger.warning("使用未训练的后备分类器 (%dx%d)，请先运行训练", input_size, input_size)
        return FallbackClassifier(input_size)

    logger.info("模型已加载: %s (%dx%d, %d params)",
                path, input_size, input_size, classifier.model.count_params())
    return classifier
