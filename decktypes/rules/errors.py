"""
规则树错误类型

结构错误与表达式编译错误，初始化失败时抛给调用方
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, List


class RuleTreeError(Exception):
    """规则树加载错误基类"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典，供CLI输出"""
        return {"error": self.__class__.__name__, "message": self.message}


class StructuralError(RuleTreeError):
    """规则树文本结构错误（层级跳跃、缺少分隔符等）"""

    def __init__(self, reason: str, line_number: int, line: str):
        self.reason = reason
        self.line_number = line_number
        self.line = line
        super().__init__(
            f"Invalid tree structure at line {line_number} ({reason}): {line}"
        )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(
            {"reason": self.reason, "line_number": self.line_number, "line": self.line}
        )
        return data


@dataclass
class ExpressionIssue:
    """单条表达式的编译问题"""

    name: str
    line: int  # 规则文件中的行号，从1开始
    column: int  # 行内列号，从1开始
    message: str

    def __str__(self) -> str:
        return f"Line {self.line}:{self.column} [{self.name}] {self.message}"


class CompileError(RuleTreeError):
    """一个或多个节点表达式编译失败，汇总所有问题"""

    def __init__(self, issues: List[ExpressionIssue]):
        self.issues = list(issues)
        details = "\n".join(str(issue) for issue in self.issues)
        super().__init__(f"Unable to compile deck types:\n{details}")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["issues"] = [asdict(issue) for issue in self.issues]
        return data


class ExpressionSyntaxError(Exception):
    """表达式解析/类型检查错误，offset为表达式内的0起始偏移"""

    def __init__(self, message: str, offset: int = 0):
        super().__init__(message)
        self.message = message
        self.offset = offset
