"""
核心功能模块

包含配置管理与规则文件监听
"""

from .config import Config
from .watcher import RuleFileReloader, RuleFileWatcher

__all__ = [
    "Config",
    "RuleFileReloader",
    "RuleFileWatcher",
]
