"""
配置管理模块

负责加载、验证和管理系统配置
"""

import os
import yaml
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field
import logging

from ..utils.file_utils import find_rules_file


@dataclass
class RulesConfig:
    """规则树配置"""

    rules_file: str = "decktypes.txt"
    search_paths: List[str] = field(
        default_factory=lambda: ["../decktypes.txt", "decktypes.txt"]
    )
    depth_marker: str = "|"
    separator: str = "|"
    structural_marker: str = "$"
    root_name: str = "All Games"
    ignore_blank_lines: bool = False
    encoding: str = "utf-8"


@dataclass
class WatchConfig:
    """规则文件监听配置"""

    interval: float = 1.0  # watch命令主循环的检查间隔（秒）


@dataclass
class SystemConfig:
    """系统配置"""

    log_level: str = "INFO"
    log_file: Optional[str] = None


class Config:
    """配置管理器"""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or self._find_config_file()
        self.logger = logging.getLogger(__name__)

        # 默认配置
        self.rules = RulesConfig()
        self.watch = WatchConfig()
        self.system = SystemConfig()

        if self.config_path and os.path.exists(self.config_path):
            self.load_config()

    def _find_config_file(self) -> str:
        """查找配置文件"""
        possible_paths = [
            "decktypes.yaml",
            "config/decktypes.yaml",
            os.path.expanduser("~/.decktypes/config.yaml"),
        ]

        for path in possible_paths:
            if os.path.exists(path):
                return path

        return "decktypes.yaml"

    def load_config(self) -> None:
        """加载配置文件"""
        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                config_data = yaml.safe_load(f)

            if not config_data:
                self.logger.warning("配置文件为空，使用默认配置")
                return

            # 加载规则树配置
            if "rules" in config_data:
                rules_data = config_data["rules"] or {}
                for key in self.rules.__dict__:
                    setattr(self.rules, key, rules_data.get(key, getattr(self.rules, key)))

            # 加载监听配置
            if "watch" in config_data:
                watch_data = config_data["watch"] or {}
                self.watch.interval = watch_data.get("interval", self.watch.interval)

            # 加载系统配置
            if "system" in config_data:
                system_data = config_data["system"] or {}
                self.system.log_level = system_data.get(
                    "log_level", self.system.log_level
                )
                self.system.log_file = system_data.get("log_file", self.system.log_file)

            self.logger.info(f"配置加载成功: {self.config_path}")

        except (OSError, yaml.YAMLError) as e:
            self.logger.error(f"配置加载失败: {e}")
            self.logger.info("使用默认配置")

    def create_default_config(self) -> None:
        """创建默认配置文件"""
        self.rules = RulesConfig()
        self.watch = WatchConfig()
        self.system = SystemConfig()
        self.save()

    def get_config_dict(self) -> Dict[str, Any]:
        """获取配置字典"""
        return {
            "rules": dict(self.rules.__dict__),
            "watch": dict(self.watch.__dict__),
            "system": dict(self.system.__dict__),
        }

    def resolve_rules_file(self, rules_file: Optional[str] = None) -> Optional[str]:
        """
        确定要加载的规则文件

        显式指定的路径优先，其次是配置中的rules_file，最后依次尝试search_paths
        """
        if rules_file:
            return rules_file if os.path.isfile(rules_file) else None
        return find_rules_file([self.rules.rules_file] + list(self.rules.search_paths))

    def validate(self) -> bool:
        """验证配置有效性"""
        errors = []

        for key in ("depth_marker", "separator"):
            value = getattr(self.rules, key)
            if not isinstance(value, str) or len(value) != 1:
                errors.append(f"{key} 必须是单个字符: {value!r}")

        if not self.rules.structural_marker:
            errors.append("structural_marker 不能为空")

        if not self.rules.root_name:
            errors.append("root_name 不能为空")

        if self.watch.interval <= 0:
            errors.append(f"interval 必须为正数: {self.watch.interval}")

        if errors:
            for error in errors:
                self.logger.error(error)
            return False

        return True

    def save(self) -> None:
        """保存配置到文件"""
        try:
            config_dir = os.path.dirname(self.config_path)
            if config_dir:
                os.makedirs(config_dir, exist_ok=True)

            with open(self.config_path, "w", encoding="utf-8") as f:
                yaml.dump(
                    self.get_config_dict(),
                    f,
                    default_flow_style=False,
                    allow_unicode=True,
                    indent=2,
                )
            self.logger.info(f"配置已保存: {self.config_path}")
        except OSError as e:
            self.logger.error(f"配置保存失败: {e}")
