"""
错误类型定义
回合级错误只中止当前回合，不影响会话
"""


class RPSError(Exception):
    """所有服务错误的基类"""


class RoundError(RPSError):
    """回合级错误：中止当前回合，比分保持不变"""

    kind = "round_error"


class InvalidRegion(RoundError, ValueError):
    """裁剪区域宽或高为 0"""

    kind = "invalid_region"


class CaptureUnavailable(RoundError, RuntimeError):
    """无法获取帧/图像"""

    kind = "capture_unavailable"


class InferenceFailure(RoundError, RuntimeError):
    """张量形状不匹配或推理后端出错"""

    kind = "inference_failure"


class ClassifierUnavailable(RPSError, RuntimeError):
    """模型文件缺失或不可用，由调用方替换为后备分类器"""

    kind = "classifier_unavailable"
