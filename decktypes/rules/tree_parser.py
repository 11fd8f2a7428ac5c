"""
规则树解析器

解析缩进编码的规则树文本。每行一条规则:

    Aggro|colors.Contains("Red")
    |Burn|cards.ContainsAny(2, "Shock", "Bolt")
    |$Midrange|colors.Count == 2
    ||Jund|colors.Contains("Black", "Green")

行首深度标记的个数为深度，其余部分在第一个分隔符处切分为名称与表达式。
"""

import re
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional

from .errors import StructuralError

logger = logging.getLogger(__name__)

ROOT_NAME = "All Games"
DEPTH_MARKER = "|"
SEPARATOR = "|"
STRUCTURAL_MARKER = "$"

_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")


@dataclass(eq=False)
class RuleNode:
    """规则树节点"""

    name: str
    expression: str
    level: int = 0
    parent: Optional["RuleNode"] = field(default=None, repr=False)
    children: List["RuleNode"] = field(default_factory=list, repr=False)
    predicate: Optional[Callable] = field(default=None, repr=False)
    index: int = 0
    line_number: int = 0  # 规则文件中的行号，根节点为0
    expression_column: int = 1  # 表达式在该行中的起始列
    structural_marker: str = field(default=STRUCTURAL_MARKER, repr=False)

    @property
    def is_root(self) -> bool:
        return self.parent is None

    @property
    def is_structural(self) -> bool:
        """结构节点仅用于提取公共条件，不作为分类结果"""
        return self.name.startswith(self.structural_marker)

    def add_child(self, child: "RuleNode") -> None:
        child.parent = self
        child.level = self.level + 1
        self.children.append(child)

    def path(self) -> List[str]:
        """从根节点的子节点到当前节点的名称链"""
        names = []
        node = self
        while node is not None and not node.is_root:
            names.append(node.name)
            node = node.parent
        return list(reversed(names))

    def iter_nodes(self) -> Iterator["RuleNode"]:
        """先序遍历子树"""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))


def parse_rule_tree(
    text: str,
    root_name: str = ROOT_NAME,
    depth_marker: str = DEPTH_MARKER,
    separator: str = SEPARATOR,
    structural_marker: str = STRUCTURAL_MARKER,
    ignore_blank_lines: bool = False,
) -> List[RuleNode]:
    """
    解析规则树文本

    Args:
        text: 规则树文本
        root_name: 隐式根节点名称
        depth_marker: 行首深度标记字符
        separator: 名称与表达式之间的分隔符
        structural_marker: 结构节点名称前缀
        ignore_blank_lines: 是否跳过空行（默认每一行都是规则行）

    Returns:
        List[RuleNode]: 按文件顺序排列的节点，首个为根节点

    Raises:
        StructuralError: 层级跳跃或缺少名称/表达式
    """
    root = RuleNode(
        name=root_name, expression="true", structural_marker=structural_marker
    )
    nodes = [root]

    # levels[d] 为深度d的候选父节点
    levels = [root]
    last_node = root
    current_depth = -1

    lines = _LINE_BREAK_RE.split(text)
    if lines[-1] == "":
        lines.pop()

    for line_number, line in enumerate(lines, 1):
        if ignore_blank_lines and not line.strip():
            continue

        depth = len(line) - len(line.lstrip(depth_marker))
        if depth > current_depth + 1:
            raise StructuralError(
                f"depth {depth} skips a level below depth {current_depth}",
                line_number,
                line,
            )

        remainder = line[depth:]
        parts = remainder.split(separator, 1)
        if len(parts) != 2:
            raise StructuralError("missing separator", line_number, line)
        name, expression = parts[0].strip(), parts[1].strip()
        if not name or not expression:
            raise StructuralError("empty name or expression", line_number, line)

        if depth == current_depth + 1:
            if current_depth >= 0:
                levels.append(last_node)
            current_depth += 1
        while depth < current_depth:
            levels.pop()
            current_depth -= 1

        expression_start = depth + len(parts[0]) + len(separator)
        expression_start += len(parts[1]) - len(parts[1].lstrip())
        node = RuleNode(
            name=name,
            expression=expression,
            index=len(nodes),
            line_number=line_number,
            expression_column=expression_start + 1,
            structural_marker=structural_marker,
        )
        levels[-1].add_child(node)
        nodes.append(node)
        last_node = node

    logger.debug(f"规则树解析完成: {len(nodes) - 1}条规则")
    return nodes
