"""
RPS Service 配置文件
包含摄像头、预处理尺寸、手部定位、模型训练、回合调度、服务器配置等
"""

from dataclasses import dataclass, field


@dataclass
class CameraConfig:
    """摄像头配置"""

    device_id: int = 0               # 摄像头设备ID
    width: int = 320                 # 分辨率宽度
    height: int = 240                # 分辨率高度
    fps: int = 30                    # 帧率
    mirror: bool = True              # 是否镜像（自拍模式）


@dataclass
class PreprocessConfig:
    """图像预处理配置"""

    # 输入边长 N，训练和推理必须一致（N x N x 3）
    input_size: int = 16


@dataclass
class LocatorConfig:
    """手部定位配置（会话开始时确定，运行中不可修改）"""

    max_num_hands: int = 1
    model_complexity: int = 0              # 0 = lite，最快
    min_detection_confidence: float = 0.5
    min_tracking_confidence: float = 0.5
    padding: float = 0.1                   # 包围盒外扩比例（相对手部尺寸）


@dataclass
class ModelConfig:
    """分类模型配置"""

    model_path: str = "model/rps_model.keras"


@dataclass
class TrainingConfig:
    """训练配置（超参数只是配置，不是契约）"""

    dataset_path: str = "dataset"
    epochs: int = 10
    batch_size: int = 16
    validation_split: float = 0.2
    learning_rate: float = 0.001
    seed: int = 0                    # 打乱样本顺序的随机种子


@dataclass
class RoundConfig:
    """回合调度配置"""

    interval_s: float = 3.0          # 自动出拳间隔（秒）
    fallback_fraction: float = 0.6   # 未检测到手时，中心方块占短边比例
    auto_play: bool = True           # 是否启用定时自动回合


@dataclass
class ServerConfig:
    """WebSocket 服务器配置"""

    host: str = "127.0.0.1"
    port: int = 8765
    mjpeg_port: int = 8766

    # 心跳配置
    heartbeat_interval: int = 5000   # 心跳间隔（毫秒）


@dataclass
class Config:
    """主配置类，整合所有配置"""

    camera: CameraConfig = field(default_factory=CameraConfig)
    preprocess: PreprocessConfig = field(default_factory=PreprocessConfig)
    locator: LocatorConfig = field(default_factory=LocatorConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    training: TrainingConfig = field(default_factory=TrainingConfig)
    round: RoundConfig = field(default_factory=RoundConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    # 调试选项
    debug: bool = False
    log_level: str = "INFO"


# 创建默认配置实例
default_config = Config()
