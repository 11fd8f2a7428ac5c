"""
工具函数模块

提供规则文件与记录文件的读取等辅助功能
"""

from .file_utils import (
    calculate_file_hash,
    find_rules_file,
    load_record,
    read_rule_text,
)

__all__ = [
    "calculate_file_hash",
    "find_rules_file",
    "load_record",
    "read_rule_text",
]
