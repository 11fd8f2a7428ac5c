"""
规则模块

负责规则树文本的解析与节点表达式的编译
"""

from .context import AttributeContext, AttributeRecord, DeckSet
from .errors import (
    CompileError,
    ExpressionIssue,
    ExpressionSyntaxError,
    RuleTreeError,
    StructuralError,
)
from .expression import ExpressionCompiler, compile_expression, compile_rule_tree
from .tree_parser import RuleNode, parse_rule_tree

__all__ = [
    "AttributeContext",
    "AttributeRecord",
    "DeckSet",
    "CompileError",
    "ExpressionIssue",
    "ExpressionSyntaxError",
    "RuleTreeError",
    "StructuralError",
    "ExpressionCompiler",
    "compile_expression",
    "compile_rule_tree",
    "RuleNode",
    "parse_rule_tree",
]
