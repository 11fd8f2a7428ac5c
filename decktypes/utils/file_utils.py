"""
文件工具函数

规则树文本与分类记录的读取
"""

import os
import hashlib
from pathlib import Path
from typing import Iterable, Optional

import yaml

from ..rules.context import AttributeRecord


def find_rules_file(candidates: Iterable[str]) -> Optional[str]:
    """按顺序返回第一个存在的规则文件路径"""
    for candidate in candidates:
        if candidate and os.path.isfile(candidate):
            return candidate
    return None


def read_rule_text(file_path: str, encoding: str = "utf-8") -> str:
    """读取规则树文本，去掉UTF-8 BOM"""
    text = Path(file_path).read_text(encoding=encoding)
    return text.lstrip("\ufeff")


def calculate_file_hash(file_path: str, algorithm: str = "md5") -> str | None:
    """计算文件哈希值"""
    try:
        hash_func = getattr(hashlib, algorithm)()

        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(4096), b""):
                hash_func.update(chunk)

        return hash_func.hexdigest()
    except OSError:
        return None


def load_record(file_path: str) -> AttributeRecord:
    """
    从YAML/JSON文件读取分类记录

    Args:
        file_path: 记录文件路径

    Returns:
        AttributeRecord: 分类记录

    Raises:
        ValueError: 文件内容不是映射
    """
    with open(file_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"记录文件格式无效: {file_path}")

    return AttributeRecord.from_dict(data)
