"""
RPS Service
摄像头手势识别的石头剪刀布对战服务
"""

__version__ = "0.1.0"
