"""
卡组分类器主模块
将编译后的规则树与输入记录进行匹配，选出唯一的最深匹配节点
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from ..rules.context import AttributeContext, AttributeRecord
from ..rules.errors import RuleTreeError
from ..rules.expression import compile_rule_tree
from ..rules.tree_parser import (
    DEPTH_MARKER,
    ROOT_NAME,
    SEPARATOR,
    STRUCTURAL_MARKER,
    RuleNode,
    parse_rule_tree,
)
from ..utils.file_utils import read_rule_text


@dataclass
class ClassificationResult:
    """分类结果"""

    name: str
    level: int
    path: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "level": self.level, "path": list(self.path)}


class DeckClassifier:
    """卡组分类器 - 规则树编译与分类"""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.logger = logging.getLogger(__name__)

        rules_config = self.config.get("rules", {})
        self.root_name = rules_config.get("root_name", ROOT_NAME)
        self.depth_marker = rules_config.get("depth_marker", DEPTH_MARKER)
        self.separator = rules_config.get("separator", SEPARATOR)
        self.structural_marker = rules_config.get("structural_marker", STRUCTURAL_MARKER)
        self.ignore_blank_lines = rules_config.get("ignore_blank_lines", False)
        self.encoding = rules_config.get("encoding", "utf-8")

        self._root: Optional[RuleNode] = None
        self._node_count = 0
        self._lock = threading.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._root is not None

    @property
    def node_count(self) -> int:
        """当前规则树的节点数（含根节点）"""
        return self._node_count

    @property
    def root(self) -> Optional[RuleNode]:
        return self._root

    def initialize(self, rule_text: str) -> None:
        """
        解析并编译整棵规则树，成功后原子替换当前规则树

        失败时保留之前的规则树。

        Args:
            rule_text: 规则树文本

        Raises:
            StructuralError: 规则树结构错误
            CompileError: 节点表达式编译失败
        """
        try:
            nodes = parse_rule_tree(
                rule_text,
                root_name=self.root_name,
                depth_marker=self.depth_marker,
                separator=self.separator,
                structural_marker=self.structural_marker,
                ignore_blank_lines=self.ignore_blank_lines,
            )
            compile_rule_tree(nodes)
        except RuleTreeError as e:
            self.logger.error(f"规则树加载失败: {e}")
            raise

        with self._lock:
            self._root = nodes[0]
            self._node_count = len(nodes)

        self.logger.info(f"规则树初始化完成，共{len(nodes) - 1}条规则")

    def initialize_from_file(self, file_path: str) -> None:
        """从文件读取规则树文本并初始化"""
        self.logger.info(f"加载规则文件: {file_path}")
        self.initialize(read_rule_text(file_path, self.encoding))

    def iter_nodes(self) -> Iterator[RuleNode]:
        root = self._snapshot()
        if root is None:
            return iter(())
        return root.iter_nodes()

    def classify(self, record: AttributeRecord) -> Optional[ClassificationResult]:
        """
        对记录进行分类

        Args:
            record: 分类记录

        Returns:
            Optional[ClassificationResult]: 唯一的最深匹配节点；
            无唯一匹配或尚未初始化时返回None
        """
        matches = self.explain(record)

        best = None
        for level in sorted(matches):
            if len(matches[level]) == 1:
                best = matches[level][0]

        if best is None:
            self.logger.debug("未找到唯一匹配的分类")
            return None

        result = ClassificationResult(name=best.name, level=best.level, path=best.path())
        self.logger.debug(f"分类完成: {' > '.join(result.path)}")
        return result

    def explain(self, record: AttributeRecord) -> Dict[int, List[RuleNode]]:
        """
        返回按层级分组的全部匹配节点（不含根节点与结构节点）

        Args:
            record: 分类记录

        Returns:
            Dict[int, List[RuleNode]]: 层级 -> 该层匹配节点（保持规则顺序）
        """
        root = self._snapshot()
        matches: Dict[int, List[RuleNode]] = {}
        if root is None:
            return matches

        context = AttributeContext.from_record(record)
        self._walk(root, context, matches)
        return matches

    def _snapshot(self) -> Optional[RuleNode]:
        with self._lock:
            return self._root

    def _walk(
        self,
        node: RuleNode,
        context: AttributeContext,
        matches: Dict[int, List[RuleNode]],
    ) -> None:
        # 先序遍历；父条件不成立时剪枝，子节点不再求值
        stack = [node]
        while stack:
            current = stack.pop()
            if not current.predicate(context):
                continue
            if not current.is_root and not current.is_structural:
                matches.setdefault(current.level, []).append(current)
            stack.extend(reversed(current.children))
