"""
WebSocket 服务模块
推送回合事件、接受手动出拳请求，并提供带手部骨骼叠加的 MJPEG 视频流
"""

import asyncio
import json
import time
import logging
import threading
import socketserver
from typing import Set, Optional, Dict, Any
from dataclasses import dataclass, asdict
from http.server import HTTPServer, BaseHTTPRequestHandler
import websockets
import cv2
import numpy as np

from . import __version__
from .core.capture import CameraCapture
from .core.errors import CaptureUnavailable
from .core.overlay import draw_landmarks
from .core.state_machine import RoundController, RoundEvent
from .config.settings import Config, default_config

logger = logging.getLogger(__name__)


# Global reference for MJPEG stream
_current_frame: Optional[np.ndarray] = None
_frame_lock = threading.Lock()


def set_current_frame(frame: np.ndarray):
    """Set current frame for MJPEG streaming"""
    global _current_frame
    with _frame_lock:
        _current_frame = frame.copy()


def get_current_frame() -> Optional[np.ndarray]:
    """Get current frame for MJPEG streaming"""
    with _frame_lock:
        return _current_frame.copy() if _current_frame is not None else None


class ThreadingHTTPServer(socketserver.ThreadingMixIn, HTTPServer):
    """Multi-threaded HTTP server to handle multiple clients"""
    daemon_threads = True
    allow_reuse_address = True


class MJPEGHandler(BaseHTTPRequestHandler):
    """MJPEG stream HTTP handler"""

    def log_message(self, format, *args):
        logger.debug("MJPEG %s", format % args)

    def do_GET(self):
        if self.path == '/stream':
            self.send_response(200)
            self.send_header('Content-Type', 'multipart/x-mixed-replace; boundary=frame')
            self.send_header('Cache-Control', 'no-cache')
            self.send_header('Access-Control-Allow-Origin', '*')
            self.end_headers()

            try:
                while True:
                    frame = get_current_frame()
                    if frame is not None:
                        ret, jpeg = cv2.imencode('.jpg', frame, [cv2.IMWRITE_JPEG_QUALITY, 70])
                        if ret:
                            self.wfile.write(b'--frame\r\n')
                            self.wfile.write(b'Content-Type: image/jpeg\r\n\r\n')
                            self.wfile.write(jpeg.tobytes())
                            self.wfile.write(b'\r\n')
                            self.wfile.flush()
                    time.sleep(0.033)  # ~30 FPS
            except (BrokenPipeError, ConnectionResetError):
                logger.debug("MJPEG client disconnected")
        else:
            self.send_response(404)
            self.end_headers()


def run_mjpeg_server(host: str, port: int):
    """Run MJPEG HTTP server in a separate thread"""
    server = ThreadingHTTPServer((host, port), MJPEGHandler)
    logger.info("MJPEG stream available at http://%s:%d/stream", host, port)
    server.serve_forever()


@dataclass
class WebSocketMessage:
    """WebSocket 消息结构"""
    type: str
    timestamp: float
    data: Dict[str, Any]

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)

    @classmethod
    def from_json(cls, json_str: str) -> "WebSocketMessage":
        data = json.loads(json_str)
        return cls(**data)


def _now_ms() -> float:
    return time.time() * 1000


class RPSServer:
    """
    RPS WebSocket 服务器
    整合摄像头采集、手部定位、分类和回合控制
    """

    def __init__(self, config: Optional[Config] = None, controller: Optional[RoundController] = None):
        self.config = config or default_config

        # 组件（controller 可由外部注入）
        self.camera: Optional[CameraCapture] = None
        self.detector = None
        self.controller: Optional[RoundController] = controller

        self.auto_play = self.config.round.auto_play

        # WebSocket 连接
        self._clients: Set[Any] = set()

        # 运行状态
        self._running = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks = []

        # 统计信息
        self._frame_count = 0
        self._start_time = 0.0

        if self.controller is not None:
            self.controller.register_callback(self._on_round_event)

    async def start(self):
        """
        启动服务

        Raises:
            CaptureUnavailable: 摄像头无法打开
        """
        logger.info("正在初始化组件...")
        self._loop = asyncio.get_running_loop()

        if self.controller is None:
            from .core.detector import HandDetector
            from .core.model import load_classifier

            self.camera = CameraCapture(
                device_id=self.config.camera.device_id,
                width=self.config.camera.width,
                height=self.config.camera.height,
                fps=self.config.camera.fps,
                mirror=self.config.camera.mirror
            )
            if not self.camera.start():
                raise CaptureUnavailable(f"cannot open camera {self.config.camera.device_id}")

            locator_config = self.config.locator
            self.detector = HandDetector(
                max_num_hands=locator_config.max_num_hands,
                min_detection_confidence=locator_config.min_detection_confidence,
                min_tracking_confidence=locator_config.min_tracking_confidence,
                model_complexity=locator_config.model_complexity,
                padding=locator_config.padding
            )

            classifier = load_classifier(
                self.config.model.model_path,
                self.config.preprocess.input_size
            )

            self.controller = RoundController(
                source=self.camera,
                locator=self.detector,
                classifier=classifier,
                input_size=self.config.preprocess.input_size,
                fallback_fraction=self.config.round.fallback_fraction
            )
            self.controller.register_callback(self._on_round_event)

        self._running = True
        self._start_time = time.time()

        logger.info("组件初始化完成")

    async def stop(self):
        """停止服务"""
        logger.info("正在停止服务...")

        self._running = False

        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []

        for client in self._clients.copy():
            await client.close()

        if self.camera:
            self.camera.stop()

        if self.detector:
            self.detector.close()

        logger.info("服务已停止")

    def _on_round_event(self, event: RoundEvent):
        """回合事件回调（在回合线程中调用）"""
        if self._loop is None or not self._clients:
            return
        asyncio.run_coroutine_threadsafe(self._broadcast_event(event), self._loop)

    async def _broadcast_event(self, event: RoundEvent):
        """广播回合事件到所有客户端"""
        message = WebSocketMessage(
            type="round_event",
            timestamp=event.timestamp,
            data=event.to_dict()
        )
        await self._broadcast(message.to_json())

    async def _broadcast(self, message: str):
        """广播消息到所有客户端"""
        if not self._clients:
            return

        await asyncio.gather(
            *[client.send(message) for client in self._clients.copy()],
            return_exceptions=True
        )

    async def play(self, trigger: str = "manual"):
        """在线程池中进行一局，避免阻塞事件循环"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.controller.play_round, trigger)

    async def _auto_play(self):
        """定时自动回合；上一局未结束时本次触发由控制器丢弃"""
        interval = self.config.round.interval_s
        logger.info("自动回合已启用: 每 %.1f 秒一局", interval)

        while self._running:
            await asyncio.sleep(interval)
            if not self.auto_play:
                continue
            try:
                await self.play("timer")
            except Exception:
                logger.exception("自动回合异常，等待下一次触发")

    async def _process_frames(self):
        """预览循环：定位手部并更新 MJPEG 流"""
        last_id = 0
        while self._running:
            frame = self.camera.read(timeout=0.0, after_id=last_id) if self.camera else None
            if frame is None:
                await asyncio.sleep(0.01)
                continue

            last_id = frame.frame_id
            self._frame_count += 1

            location = self.detector.locate(frame.image) if self.detector else None
            set_current_frame(draw_landmarks(frame.image, location))

            await asyncio.sleep(0.03)

    def _score_message(self) -> WebSocketMessage:
        return WebSocketMessage(
            type="score",
            timestamp=_now_ms(),
            data={
                "score": self.controller.score.to_dict(),
                "rounds_played": self.controller.rounds_played,
                "auto_play": self.auto_play
            }
        )

    async def handle_client(self, websocket):
        """处理客户端连接"""
        client_id = id(websocket)
        logger.info("客户端已连接: %s", client_id)

        self._clients.add(websocket)

        welcome = WebSocketMessage(
            type="connected",
            timestamp=_now_ms(),
            data={
                "message": "Welcome to RPS Service",
                "version": __version__,
                "config": {
                    "input_size": self.config.preprocess.input_size,
                    "interval_s": self.config.round.interval_s,
                    "camera": {
                        "width": self.config.camera.width,
                        "height": self.config.camera.height
                    }
                }
            }
        )
        await websocket.send(welcome.to_json())

        try:
            async for message in websocket:
                await self._handle_message(websocket, message)
        except websockets.exceptions.ConnectionClosed:
            logger.debug("连接已关闭: %s", client_id)
        finally:
            self._clients.discard(websocket)
            logger.info("客户端已断开: %s", client_id)

    async def _handle_message(self, websocket, message: str):
        """处理客户端消息"""
        try:
            data = json.loads(message)
            msg_type = data.get("type")

            if msg_type == "ping":
                pong = WebSocketMessage(type="pong", timestamp=_now_ms(), data={})
                await websocket.send(pong.to_json())

            elif msg_type == "play":
                # 手动出拳；已有回合进行中时为空操作
                result = await self.play("manual")
                reply = WebSocketMessage(
                    type="round_result",
                    timestamp=_now_ms(),
                    data=result.to_dict() if result else {"skipped": True}
                )
                await websocket.send(reply.to_json())

            elif msg_type == "get_score":
                await websocket.send(self._score_message().to_json())

            elif msg_type == "set_auto_play":
                self.auto_play = bool(data.get("data", {}).get("enabled", False))
                logger.info("自动回合: %s", "启用" if self.auto_play else "停用")
                await websocket.send(self._score_message().to_json())

            else:
                logger.warning("未知消息类型: %s", msg_type)

        except json.JSONDecodeError:
            logger.warning("无效的 JSON 消息: %s", message)
        except websockets.exceptions.ConnectionClosed:
            raise
        except Exception as e:
            logger.exception("处理消息异常: %s", e)

    async def run(self, host: str = "127.0.0.1", port: int = 8765, mjpeg_port: int = 8766):
        """运行服务器"""
        await self.start()

        mjpeg_thread = threading.Thread(
            target=run_mjpeg_server,
            args=(host, mjpeg_port),
            daemon=True
        )
        mjpeg_thread.start()

        self._tasks.append(asyncio.create_task(self._process_frames()))
        self._tasks.append(asyncio.create_task(self._auto_play()))

        logger.info("WebSocket 服务器启动: ws://%s:%d", host, port)

        async with websockets.serve(self.handle_client, host, port):
            while self._running:
                await asyncio.sleep(self.config.server.heartbeat_interval / 1000)

                score = self.controller.score
                elapsed = time.time() - self._start_time
                fps = self._frame_count / elapsed if elapsed > 0 else 0
                logger.debug("帧数: %d, FPS: %.1f, 客户端: %d, 比分: %s",
                             self._frame_count, fps, len(self._clients), score.to_dict())
