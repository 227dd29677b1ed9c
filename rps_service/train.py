"""
模型训练模块
从三类目录数据集训练 CNN，并保存模型文件供服务加载
"""

import os
import logging

import numpy as np

from .config.settings import Config, default_config
from .core.dataset import load_dataset
from .core.model import build_model

logger = logging.getLogger(__name__)


def train(config: Config = default_config):
    """
    训练并保存模型

    Returns:
        Keras History 对象
    """
    size = config.preprocess.input_size
    training = config.training

    logger.info("加载数据集: %s", training.dataset_path)
    x, y = load_dataset(training.dataset_path, size)
    if len(x) == 0:
        raise ValueError(f"no images found under {training.dataset_path}")

    # validation_split 取末尾样本，需先打乱
    order = np.random.default_rng(training.seed).permutation(len(x))
    x, y = x[order], y[order]

    model = build_model(size, training.learning_rate)
    logger.info("模型参数量: %d", model.count_params())

    logger.info("开始训练: epochs=%d, batch_size=%d, validation_split=%.2f",
                training.epochs, training.batch_size, training.validation_split)
    history = model.fit(
        x, y,
        epochs=training.epochs,
        batch_size=training.batch_size,
        validation_split=training.validation_split,
        shuffle=True,
        verbose=2,
    )

    model_path = config.model.model_path
    model_dir = os.path.dirname(model_path)
    if model_dir:
        os.makedirs(model_dir, exist_ok=True)
    model.save(model_path)
    logger.info("训练完成，模型已保存: %s", model_path)

    return history
