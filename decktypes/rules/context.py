"""
属性上下文

分类输入记录（AttributeRecord）以及谓词求值时读取的上下文（AttributeContext）
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional


class DeckSet(dict):
    """计数多重集合：名称 -> 出现次数"""

    def contains(self, *items: str) -> bool:
        """是否包含全部给定项"""
        return all(item in self for item in items)

    def contains_any(self, *items: str, min_count: int = 1) -> bool:
        """是否至少包含min_count个给定项"""
        return sum(1 for item in items if item in self) >= min_count

    def count(self, item: str) -> int:
        return self.get(item, 0)

    @property
    def distinct(self) -> int:
        return len(self)

    @property
    def total(self) -> int:
        return sum(self.values())


def _to_counts(value: Any) -> Dict[str, int]:
    """映射原样复制，列表按名称计数"""
    if not value:
        return {}
    if isinstance(value, Mapping):
        counts = {}
        for key, count in value.items():
            try:
                counts[str(key)] = int(count)
            except (TypeError, ValueError):
                raise ValueError(f"计数无效: {key!r} -> {count!r}") from None
        return counts
    if isinstance(value, str):
        return {value: 1}
    return dict(Counter(str(item) for item in value))


@dataclass
class AttributeRecord:
    """分类输入：类别标签 + 三个计数多重集合"""

    category: Optional[str] = None
    colors: Dict[str, int] = field(default_factory=dict)
    cards: Dict[str, int] = field(default_factory=dict)
    words: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AttributeRecord":
        """
        从字典构建记录

        Args:
            data: 含category（或game_type）、colors、cards、words的字典，
                  多重集合可以是 名称->次数 映射，也可以是名称列表

        Returns:
            AttributeRecord: 分类记录
        """
        category = data.get("category", data.get("game_type"))
        return cls(
            category=None if category is None else str(category),
            colors=_to_counts(data.get("colors")),
            cards=_to_counts(data.get("cards")),
            words=_to_counts(data.get("words")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "colors": dict(self.colors),
            "cards": dict(self.cards),
            "words": dict(self.words),
        }


@dataclass(frozen=True)
class AttributeContext:
    """单次分类调用的求值上下文，作为参数传给每个谓词"""

    category: Optional[str]
    colors: DeckSet
    cards: DeckSet
    words: DeckSet

    @classmethod
    def from_record(cls, record: AttributeRecord) -> "AttributeContext":
        return cls(
            category=record.category,
            colors=DeckSet(record.colors or {}),
            cards=DeckSet(record.cards or {}),
            words=DeckSet(record.words or {}),
        )

    def multiset(self, name: str) -> DeckSet:
        """按属性名获取多重集合"""
        return getattr(self, name)


MULTISET_ATTRIBUTES = ("colors", "cards", "words")
