import threading

import numpy as np
import pytest

from rps_service.core.capture import Frame
from rps_service.core.classifier import Classifier
from rps_service.core.errors import InferenceFailure
from rps_service.core.gesture import Gesture
from rps_service.core.region import BoundingRegion


def make_image(width=320, height=240, value=128):
    image = np.full((height, width, 3), value, dtype=np.uint8)
    # 左上角放一块不同颜色，避免整幅图完全一致
    image[: height // 4, : width // 4] = (255, 0, 0)
    return image


class FakeSource:
    """每次 read 返回同一帧；frames 为 None 时模拟取帧失败"""

    def __init__(self, image=None, running=True):
        self.image = image
        self.is_running = running
        self.reads = 0

    def read(self, timeout=0.1):
        self.reads += 1
        if self.image is None:
            return None
        return Frame(
            image=self.image,
            frame_id=self.reads,
            timestamp=0.0,
            width=self.image.shape[1],
            height=self.image.shape[0]
        )


class FakeLocation:
    def __init__(self, region):
        self.region = region
        self.landmarks = np.zeros((21, 3))


class FakeLocator:
    """返回固定区域；region 为 None 时模拟未检测到手"""

    def __init__(self, region=None, error=None):
        self.region = region
        self.error = error
        self.calls = 0

    def locate(self, image):
        self.calls += 1
        if self.error is not None:
            raise self.error
        if self.region is None:
            return None
        return FakeLocation(self.region)


class FixedClassifier(Classifier):
    """总是输出固定概率向量"""

    name = "fixed"

    def __init__(self, probabilities, input_size=16):
        super().__init__(input_size)
        self.probabilities = np.asarray(probabilities, dtype=np.float64)
        self.inputs = []

    def _predict_proba(self, batch):
        self.inputs.append(batch)
        return self.probabilities


class FailingClassifier(Classifier):
    """推理时抛出 error；默认为 InferenceFailure"""

    def __init__(self, input_size=16, error=None):
        super().__init__(input_size)
        self.error = error or InferenceFailure("backend exploded")
        self.calls = 0

    def _predict_proba(self, batch):
        self.calls += 1
        raise self.error


class BlockingClassifier(FixedClassifier):
    """推理时阻塞，直到 release 被设置"""

    def __init__(self, probabilities, input_size=16):
        super().__init__(probabilities, input_size)
        self.entered = threading.Event()
        self.release = threading.Event()

    def _predict_proba(self, batch):
        self.entered.set()
        self.release.wait(timeout=5.0)
        return super()._predict_proba(batch)


PROBA = {
    Gesture.ROCK: [0.8, 0.15, 0.05],
    Gesture.PAPER: [0.1, 0.7, 0.2],
    Gesture.SCISSORS: [0.05, 0.05, 0.9],
}


@pytest.fixture
def image():
    return make_image()


@pytest.fixture
def hand_region():
    return BoundingRegion(x=0.1, y=0.1, width=0.3, height=0.4)
