"""
图像采集模块
摄像头实时采集或静态图片，统一输出 Frame
"""

import cv2
import numpy as np
from typing import Optional, Generator, Union
from dataclasses import dataclass
import logging
import threading
import time

from .errors import CaptureUnavailable

logger = logging.getLogger(__name__)


@dataclass
class Frame:
    """视频帧数据结构"""
    image: np.ndarray           # BGR 图像数据
    frame_id: int               # 帧序号
    timestamp: float            # 时间戳（毫秒）
    width: int                  # 图像宽度
    height: int                 # 图像高度


class CameraCapture:
    """
    摄像头采集类
    采集线程只保留最近一帧；多个消费者（预览、回合）共享同一帧槽，
    超过 max_age 的帧视为过期，不再返回
    """

    def __init__(
        self,
        device_id: int = 0,
        width: int = 320,
        height: int = 240,
        fps: int = 30,
        mirror: bool = True,
        max_age: Optional[float] = None,
        max_failures: int = 100
    ):
        """
        初始化摄像头

        Args:
            device_id: 摄像头设备ID
            width: 分辨率宽度
            height: 分辨率高度
            fps: 目标帧率
            mirror: 是否水平翻转（镜像模式）
            max_age: 帧的最长有效期（秒），默认约 3 个帧间隔
            max_failures: 连续读帧失败多少次后视为摄像头断开
        """
        self.device_id = device_id
        self.width = width
        self.height = height
        self.fps = fps
        self.mirror = mirror
        self.max_age = max_age if max_age is not None else max(3.0 / max(fps, 1), 0.1)
        self.max_failures = max_failures

        self._cap: Optional[cv2.VideoCapture] = None
        self._cond = threading.Condition()
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._frame_count = 0
        self._start_time = 0.0

        # 最近一帧及其采集时刻（time.monotonic 秒）
        self._latest: Optional[Frame] = None
        self._latest_at = 0.0

    def start(self) -> bool:
        """
        启动摄像头采集

        Returns:
            是否成功启动
        """
        if self._running:
            return True

        self._cap = cv2.VideoCapture(self.device_id)
        if not self._cap.isOpened():
            logger.error("无法打开摄像头 %s", self.device_id)
            self._cap = None
            return False

        self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self._cap.set(cv2.CAP_PROP_FPS, self.fps)

        logger.info("摄像头已启动: %dx%d @ %.1ffps (帧有效期 %.2fs)",
                    int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
                    int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
                    self._cap.get(cv2.CAP_PROP_FPS),
                    self.max_age)

        self._running = True
        self._start_time = time.time() * 1000
        self._frame_count = 0
        self._thread = threading.Thread(target=self._capture_loop, daemon=True)
        self._thread.start()

        return True

    def stop(self):
        """停止摄像头采集"""
        with self._cond:
            self._running = False
            self._cond.notify_all()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=1.0)

        if self._cap:
            self._cap.release()
            self._cap = None

        self._clear()
        logger.info("摄像头已停止")

    def _publish(self, frame: Frame):
        with self._cond:
            self._latest = frame
            self._latest_at = time.monotonic()
            self._cond.notify_all()

    def _clear(self):
        with self._cond:
            self._latest = None
            self._latest_at = 0.0
            self._cond.notify_all()

    def _capture_loop(self):
        """采集线程主循环；退出时清空帧槽并标记为未运行"""
        cap = self._cap
        failures = 0

        while self._running and cap is not None and cap.isOpened():
            ret, image = cap.read()

            if not ret:
                failures += 1
                if failures >= self.max_failures:
                    logger.error("连续 %d 次读取帧失败", failures)
                    break
                time.sleep(0.01)
                continue
            failures = 0

            if self.mirror:
                image = cv2.flip(image, 1)

            self._frame_count += 1
            self._publish(Frame(
                image=image,
                frame_id=self._frame_count,
                timestamp=time.time() * 1000 - self._start_time,
                width=image.shape[1],
                height=image.shape[0]
            ))

        with self._cond:
            if self._running:
                logger.error("摄像头 %s 采集中断", self.device_id)
            self._running = False
        self._clear()

    def _fresh_frame(self, after_id: int) -> Optional[Frame]:
        frame = self._latest
        if frame is None or frame.frame_id <= after_id:
            return None
        if time.monotonic() - self._latest_at > self.max_age:
            return None
        return frame

    def read(self, timeout: float = 0.1, after_id: int = 0) -> Optional[Frame]:
        """
        读取最近一帧

        Args:
            timeout: 等待新帧的超时时间（秒）
            after_id: 只返回 frame_id 大于该值的帧

        Returns:
            未过期的 Frame；超时、帧已过期或摄像头已停止时返回 None
        """
        deadline = time.monotonic() + timeout
        with self._cond:
            while True:
                frame = self._fresh_frame(after_id)
                if frame is not None:
                    return frame
                remaining = deadline - time.monotonic()
                if not self._running or remaining <= 0:
                    return None
                self._cond.wait(remaining)

    def read_generator(self) -> Generator[Frame, None, None]:
        """
        帧生成器，每一帧只产出一次

        Yields:
            Frame 对象
        """
        last_id = 0
        while self._running:
            frame = self.read(timeout=0.5, after_id=last_id)
            if frame is not None:
                last_id = frame.frame_id
                yield frame

    @property
    def is_running(self) -> bool:
        """是否正在运行"""
        return self._running

    @property
    def actual_fps(self) -> float:
        """计算实际帧率"""
        if self._frame_count == 0 or self._start_time == 0:
            return 0.0
        elapsed = (time.time() * 1000 - self._start_time) / 1000
        return self._frame_count / elapsed if elapsed > 0 else 0.0

    def __enter__(self):
        """支持 with 语句"""
        if not self.start():
            raise CaptureUnavailable(f"cannot open camera {self.device_id}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """支持 with 语句"""
        self.stop()
        return False


class StaticImageSource:
    """
    静态图片源
    从文件路径或编码后的图片字节读取，每次 read 返回同一张图
    """

    def __init__(self, source: Union[str, bytes, np.ndarray]):
        """
        Args:
            source: 图片路径、编码字节（png/jpg）或已解码的 BGR 数组
        """
        if isinstance(source, np.ndarray):
            image = source
        elif isinstance(source, (bytes, bytearray)):
            buffer = np.frombuffer(bytes(source), dtype=np.uint8)
            image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
        else:
            image = cv2.imread(str(source), cv2.IMREAD_COLOR)

        if image is None or image.size == 0:
            raise CaptureUnavailable(f"cannot decode image source: {source!r:.80}")

        self._image = image
        self._frame_count = 0
        self._running = True

    def read(self, timeout: float = 0.1) -> Optional[Frame]:
        if not self._running:
            return None

        self._frame_count += 1
        return Frame(
            image=self._image.copy(),
            frame_id=self._frame_count,
            timestamp=time.time() * 1000,
            width=self._image.shape[1],
            height=self._image.shape[0]
        )

    def stop(self):
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running
