#!/usr/bin/env python3
"""
RPS Service - 石头剪刀布手势对战
主入口文件

用法:
    rps-service                       # 启动 WebSocket 服务器
    rps-service --debug               # 启动调试预览窗口
    rps-service --train               # 训练模型
    rps-service --predict IMAGE       # 对单张图片推理
"""

import argparse
import asyncio
import logging
import sys
import time

from .config.settings import Config
from .core.errors import CaptureUnavailable

logger = logging.getLogger("rps_service")


def setup_logging(level: str = "INFO"):
    """配置日志输出格式: [LEVEL] name: message"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="[%(levelname)s] %(name)s: %(message)s",
        stream=sys.stdout
    )


def run_debug_mode(config: Config):
    """
    调试模式：显示预览窗口，不启动 WebSocket 服务器
    用于测试手势识别效果
    """
    import cv2
    from .core.capture import CameraCapture
    from .core.detector import HandDetector
    from .core.model import load_classifier
    from .core.overlay import draw_info, draw_landmarks
    from .core.state_machine import RoundController, RoundEvent

    logger.info("=" * 50)
    logger.info("RPS 调试模式")
    logger.info("按 'q' 退出 | 空格 手动出拳 | 'a' 切换自动回合")
    logger.info("=" * 50)

    camera = CameraCapture(
        device_id=config.camera.device_id,
        width=config.camera.width,
        height=config.camera.height,
        fps=config.camera.fps,
        mirror=config.camera.mirror
    )
    if not camera.start():
        raise CaptureUnavailable(f"cannot open camera {config.camera.device_id}")

    detector = HandDetector(
        max_num_hands=config.locator.max_num_hands,
        min_detection_confidence=config.locator.min_detection_confidence,
        min_tracking_confidence=config.locator.min_tracking_confidence,
        model_complexity=config.locator.model_complexity,
        padding=config.locator.padding
    )
    classifier = load_classifier(config.model.model_path, config.preprocess.input_size)

    controller = RoundController(
        source=camera,
        locator=detector,
        classifier=classifier,
        input_size=config.preprocess.input_size,
        fallback_fraction=config.round.fallback_fraction
    )

    def on_round_event(event: RoundEvent):
        if event.event_type != "state":
            logger.debug("[EVENT] %s: round=%d state=%s",
                         event.event_type, event.round_id, event.state.value)

    controller.register_callback(on_round_event)

    auto_play = config.round.auto_play
    last_round_at = time.time()
    last_result = None

    try:
        for frame in camera.read_generator():
            location = detector.locate(frame.image)
            output = draw_landmarks(frame.image, location, draw_region=True)

            now = time.time()
            if auto_play and now - last_round_at >= config.round.interval_s:
                last_round_at = now
                last_result = controller.play_round("timer") or last_result

            score = controller.score
            lines = [
                f"FPS: {camera.actual_fps:.1f}",
                f"Hand: {'YES' if location else 'NO (center region)'}",
                f"Score: You {score.player} - CPU {score.computer} - Ties {score.ties}",
                f"Auto: {'ON' if auto_play else 'OFF'} ({config.round.interval_s:.0f}s)",
            ]
            if last_result:
                lines.append(
                    f"You {last_result.player.gesture.value} "
                    f"({last_result.player.confidence * 100:.1f}%) vs "
                    f"CPU {last_result.computer.value} = {last_result.outcome.value.upper()}"
                )
            draw_info(output, lines, highlight="Hand: YES")

            cv2.imshow("RPS Debug", output)

            key = cv2.waitKey(1) & 0xFF
            if key == ord('q'):
                break
            elif key == ord(' '):
                last_result = controller.play_round("manual") or last_result
                last_round_at = time.time()
            elif key == ord('a'):
                auto_play = not auto_play
                logger.info("自动回合%s", "启用" if auto_play else "停用")

    finally:
        camera.stop()
        detector.close()
        cv2.destroyAllWindows()
        logger.info("调试模式结束")


def run_server_mode(config: Config):
    """
    服务器模式：启动 WebSocket 服务器
    """
    from .server import RPSServer

    logger.info("=" * 50)
    logger.info("RPS 服务器模式")
    logger.info("=" * 50)

    server = RPSServer(config)

    async def _serve():
        try:
            await server.run(
                host=config.server.host,
                port=config.server.port,
                mjpeg_port=config.server.mjpeg_port
            )
        finally:
            await server.stop()

    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        logger.info("收到中断信号")


def run_train_mode(config: Config):
    """训练模式：从数据集训练并保存模型"""
    from .train import train

    train(config)


def run_predict_mode(config: Config, image_path: str):
    """
    预测模式：对单张图片推理并打印各类置信度
    未指定图片时使用数据集中的第一张
    """
    from .core.classifier import predict_image
    from .core.dataset import find_sample_image
    from .core.model import load_classifier

    if not image_path:
        image_path = find_sample_image(config.training.dataset_path)
        if image_path is None:
            logger.error("数据集中没有样本图片: %s", config.training.dataset_path)
            return 1

    classifier = load_classifier(config.model.model_path, config.preprocess.input_size)
    result = predict_image(image_path, classifier)

    logger.info("图片: %s", image_path)
    logger.info("预测: %s", result.gesture.value)
    logger.info("置信度: %s", ", ".join(
        f"{name}: {p * 100:.1f}%" for name, p in result.to_dict()["probabilities"].items()
    ))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rps-service",
        description="RPS Service - 石头剪刀布手势对战",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例:
    rps-service                       启动 WebSocket 服务器
    rps-service --debug               启动调试预览窗口
    rps-service --train               训练模型
    rps-service --predict hand.png    对单张图片推理
    rps-service --port 9000           指定端口号
        """
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--debug", "-d",
        action="store_true",
        help="启动调试模式（预览窗口）"
    )
    mode.add_argument(
        "--train",
        action="store_true",
        help="从数据集训练模型"
    )
    mode.add_argument(
        "--predict",
        nargs="?",
        const="",
        metavar="IMAGE",
        help="对单张图片推理（省略时取数据集第一张）"
    )

    parser.add_argument("--host", type=str, default="127.0.0.1",
                        help="服务器主机地址 (默认: 127.0.0.1)")
    parser.add_argument("--port", "-p", type=int, default=8765,
                        help="服务器端口 (默认: 8765)")
    parser.add_argument("--mjpeg-port", type=int, default=8766,
                        help="MJPEG 视频流端口 (默认: 8766)")
    parser.add_argument("--camera", "-c", type=int, default=0,
                        help="摄像头设备 ID (默认: 0)")
    parser.add_argument("--model", "-m", type=str, default=None,
                        help="模型文件路径")
    parser.add_argument("--dataset", type=str, default=None,
                        help="数据集目录")
    parser.add_argument("--size", type=int, default=None,
                        help="预处理边长 N（训练和推理必须一致）")
    parser.add_argument("--interval", type=float, default=None,
                        help="自动回合间隔（秒）")
    parser.add_argument("--epochs", type=int, default=None,
                        help="训练轮数")
    parser.add_argument("--log-level", type=str, default="INFO",
                        help="日志级别 (默认: INFO)")
    return parser


def config_from_args(args: argparse.Namespace) -> Config:
    """命令行参数覆盖默认配置"""
    config = Config()
    config.server.host = args.host
    config.server.port = args.port
    config.server.mjpeg_port = args.mjpeg_port
    config.camera.device_id = args.camera
    config.log_level = args.log_level
    config.debug = args.debug

    if args.model:
        config.model.model_path = args.model
    if args.dataset:
        config.training.dataset_path = args.dataset
    if args.size:
        config.preprocess.input_size = args.size
    if args.interval:
        config.round.interval_s = args.interval
    if args.epochs:
        config.training.epochs = args.epochs

    return config


def main(argv=None) -> int:
    """主函数"""
    args = build_parser().parse_args(argv)
    config = config_from_args(args)
    setup_logging(config.log_level)

    try:
        if args.train:
            run_train_mode(config)
        elif args.predict is not None:
            return run_predict_mode(config, args.predict)
        elif config.debug:
            run_debug_mode(config)
        else:
            run_server_mode(config)
    except CaptureUnavailable as e:
        logger.error("无法开始游戏: %s", e)
        return 1
    except FileNotFoundError as e:
        logger.error("%s", e)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
