"""
基于规则树的卡组类型分类器

从缩进编码的规则树文本编译每个节点的条件表达式，
并为一条对局记录（类别、颜色、卡牌、关键词）选出唯一的最深匹配分类。
"""

__version__ = "0.1.0"

from .classifiers import ClassificationResult, DeckClassifier
from .core.config import Config
from .rules import AttributeRecord, CompileError, RuleTreeError, StructuralError

__all__ = [
    "ClassificationResult",
    "DeckClassifier",
    "Config",
    "AttributeRecord",
    "CompileError",
    "RuleTreeError",
    "StructuralError",
]
