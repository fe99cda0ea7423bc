# System Module - Infrastructure foundations

"""
システムモジュール

インフラストラクチャ基盤を提供:
- logging: ログ設定
"""

from .logging import get_logger, setup_logging

__all__ = [
    "setup_logging",
    "get_logger",
]
