"""
规则表达式编译器

将节点条件文本解析为AST，做静态类型检查，并编译为接收AttributeContext的闭包。
整棵规则树作为一个编译单元：任一表达式失败则整体失败，错误汇总到CompileError。

表达式示例:
    colors.Contains("Red") && !cards.ContainsAny(2, "Shock", "Bolt")
    category == "Ranked" || words["Haste"] + words["Flying"] >= 3
    matches("$Aggro") and colors.Count == 1
"""

import re
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from .context import AttributeContext, MULTISET_ATTRIBUTES
from .errors import CompileError, ExpressionIssue, ExpressionSyntaxError
from .tree_parser import RuleNode

logger = logging.getLogger(__name__)

Predicate = Callable[[AttributeContext], bool]
Evaluator = Callable[[AttributeContext], Any]

BOOL = "bool"
INT = "int"
STR = "str"
SET = "set"
NULL = "null"


# ------------------------------------------------------------------
# 词法分析
# ------------------------------------------------------------------
@dataclass
class Token:
    kind: str  # int, string, ident, op, eof
    value: str
    offset: int


_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<int>\d+)
  | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
  | (?P<ident>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<op>&&|\|\||==|!=|<=|>=|[!<>()\[\],.+\-])
    """,
    re.VERBOSE,
)


def tokenize(text: str) -> List[Token]:
    """将表达式文本切分为Token列表，末尾附加eof"""
    tokens = []
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if not match:
            if text[pos] in "\"'":
                raise ExpressionSyntaxError("Unterminated string literal", pos)
            raise ExpressionSyntaxError(f"Unexpected character '{text[pos]}'", pos)
        kind = match.lastgroup
        if kind != "ws":
            value = match.group()
            if kind == "string":
                value = re.sub(r"\\(.)", r"\1", value[1:-1])
            tokens.append(Token(kind, value, pos))
        pos = match.end()
    tokens.append(Token("eof", "", len(text)))
    return tokens


# ------------------------------------------------------------------
# AST
# ------------------------------------------------------------------
@dataclass
class Node:
    """AST节点基类"""

    offset: int


@dataclass
class Literal(Node):
    value: Any


@dataclass
class Attribute(Node):
    """上下文属性访问，如 colors、category"""

    name: str


@dataclass
class Member(Node):
    """成员访问或方法调用，args为None表示属性访问"""

    target: Node
    name: str
    args: Optional[List[Node]] = None


@dataclass
class Index(Node):
    """计数访问，如 cards["Bolt"]"""

    target: Node
    key: Node


@dataclass
class Call(Node):
    """函数调用，如 matches("$Aggro")"""

    name: str
    args: List[Node] = field(default_factory=list)


@dataclass
class UnaryOp(Node):
    operator: str
    operand: Node


@dataclass
class BinaryOp(Node):
    left: Node
    operator: str
    right: Node


# ------------------------------------------------------------------
# 语法分析（递归下降）
# ------------------------------------------------------------------
_KEYWORD_OPS = {"and": "&&", "or": "||", "not": "!"}
_COMPARISON_OPS = ("==", "!=", "<=", ">=", "<", ">")

# 括号、参数与!的最大嵌套层数
MAX_NESTING = 50
# AST深度上限，经matches()引用的节点深度也计入
MAX_DEPTH = 200


class ExpressionParser:
    """递归下降解析器，优先级从低到高: || && ! 比较 加减 后缀"""

    def __init__(self, text: str):
        self.text = text
        self.tokens = tokenize(text)
        self.pos = 0
        self.depth = 0

    def parse(self) -> Node:
        node = self._parse_or()
        token = self._peek()
        if token.kind != "eof":
            raise ExpressionSyntaxError(f"Unexpected token '{token.value}'", token.offset)
        return node

    def _peek(self) -> Token:
        return self.tokens[self.pos]

    def _advance(self) -> Token:
        token = self.tokens[self.pos]
        if token.kind != "eof":
            self.pos += 1
        return token

    def _match(self, *operators: str) -> Optional[Token]:
        """匹配运算符（含and/or/not关键字形式），成功则消费"""
        token = self._peek()
        if token.kind == "op" and token.value in operators:
            return self._advance()
        if token.kind == "ident" and _KEYWORD_OPS.get(token.value.lower()) in operators:
            self._advance()
            return Token("op", _KEYWORD_OPS[token.value.lower()], token.offset)
        return None

    def _expect(self, operator: str) -> Token:
        token = self._match(operator)
        if token is None:
            found = self._peek()
            what = f"'{found.value}'" if found.kind != "eof" else "end of expression"
            raise ExpressionSyntaxError(f"Expected '{operator}' but found {what}", found.offset)
        return token

    def _descend(self) -> None:
        self.depth += 1
        if self.depth > MAX_NESTING:
            raise ExpressionSyntaxError("Expression is nested too deeply", self._peek().offset)

    def _parse_or(self) -> Node:
        self._descend()
        node = self._parse_and()
        while True:
            token = self._match("||")
            if token is None:
                break
            node = BinaryOp(token.offset, node, "||", self._parse_and())
        self.depth -= 1
        return node

    def _parse_and(self) -> Node:
        node = self._parse_not()
        while True:
            token = self._match("&&")
            if token is None:
                return node
            node = BinaryOp(token.offset, node, "&&", self._parse_not())

    def _parse_not(self) -> Node:
        token = self._match("!")
        if token is not None:
            self._descend()
            operand = self._parse_not()
            self.depth -= 1
            return UnaryOp(token.offset, "!", operand)
        return self._parse_comparison()

    def _parse_comparison(self) -> Node:
        node = self._parse_additive()
        token = self._match(*_COMPARISON_OPS)
        if token is not None:
            node = BinaryOp(token.offset, node, token.value, self._parse_additive())
        return node

    def _parse_additive(self) -> Node:
        node = self._parse_postfix()
        while True:
            token = self._match("+", "-")
            if token is None:
                return node
            node = BinaryOp(token.offset, node, token.value, self._parse_postfix())

    def _parse_postfix(self) -> Node:
        node = self._parse_primary()
        while True:
            if self._match("."):
                name = self._advance()
                if name.kind != "ident":
                    raise ExpressionSyntaxError("Expected member name after '.'", name.offset)
                args = self._parse_args() if self._match("(") else None
                node = Member(name.offset, node, name.value, args)
            elif self._match("["):
                key = self._parse_or()
                self._expect("]")
                node = Index(key.offset, node, key)
            else:
                return node

    def _parse_args(self) -> List[Node]:
        """解析调用参数，左括号已被消费"""
        args = []
        if self._match(")"):
            return args
        while True:
            args.append(self._parse_or())
            if self._match(")"):
                return args
            self._expect(",")

    def _parse_primary(self) -> Node:
        token = self._advance()
        if token.kind == "int":
            return Literal(token.offset, int(token.value))
        if token.kind == "string":
            return Literal(token.offset, token.value)
        if token.kind == "ident":
            lowered = token.value.lower()
            if lowered == "true":
                return Literal(token.offset, True)
            if lowered == "false":
                return Literal(token.offset, False)
            if lowered == "null":
                return Literal(token.offset, None)
            if self._match("("):
                return Call(token.offset, token.value, self._parse_args())
            return Attribute(token.offset, token.value)
        if token.kind == "op" and token.value == "(":
            node = self._parse_or()
            self._expect(")")
            return node
        if token.kind == "eof":
            raise ExpressionSyntaxError("Expected expression", token.offset)
        raise ExpressionSyntaxError(f"Unexpected token '{token.value}'", token.offset)


# ------------------------------------------------------------------
# 类型检查与编译
# ------------------------------------------------------------------
def _normalize(name: str) -> str:
    return name.replace("_", "").lower()


_ATTRIBUTE_ALIASES = {"category": "category", "gametype": "category"}
_ATTRIBUTE_ALIASES.update({name: name for name in MULTISET_ATTRIBUTES})


def _type_of(value: Any) -> str:
    if value is None:
        return NULL
    if isinstance(value, bool):
        return BOOL
    if isinstance(value, int):
        return INT
    return STR


class ExpressionCompiler:
    """
    单条表达式编译器

    Args:
        resolve_reference: matches("name")的解析回调，参数为(名称, 偏移)，
                           返回被引用节点的谓词；为None时不支持matches()
    """

    def __init__(self, resolve_reference: Optional[Callable[[str, int], Predicate]] = None):
        self.resolve_reference = resolve_reference
        self.max_depth = 0
        self._depth = 0

    def compile(self, text: str) -> Predicate:
        """解析并编译表达式，结果必须为布尔类型"""
        ast = ExpressionParser(text).parse()
        self.max_depth = 0
        self._depth = 0
        kind, evaluate = self._compile(ast)
        if kind != BOOL:
            raise ExpressionSyntaxError(
                f"Expression must evaluate to bool, not {kind}", ast.offset
            )
        return evaluate

    def _compile(self, node: Node) -> Tuple[str, Evaluator]:
        self._depth += 1
        if self._depth > MAX_DEPTH:
            raise ExpressionSyntaxError("Expression is nested too deeply", node.offset)
        self.max_depth = max(self.max_depth, self._depth)
        handler = getattr(self, f"_compile_{type(node).__name__.lower()}")
        result = handler(node)
        self._depth -= 1
        return result

    def _compile_literal(self, node: Literal) -> Tuple[str, Evaluator]:
        value = node.value
        return _type_of(value), lambda ctx: value

    def _compile_attribute(self, node: Attribute) -> Tuple[str, Evaluator]:
        name = _ATTRIBUTE_ALIASES.get(_normalize(node.name))
        if name is None:
            raise ExpressionSyntaxError(
                f"The name '{node.name}' does not exist in the current context", node.offset
            )
        if name == "category":
            return STR, lambda ctx: ctx.category
        return SET, lambda ctx: ctx.multiset(name)

    def _compile_member(self, node: Member) -> Tuple[str, Evaluator]:
        kind, target = self._compile(node.target)
        if kind != SET:
            raise ExpressionSyntaxError(
                f"'{kind}' does not contain a definition for '{node.name}'", node.offset
            )
        member = _normalize(node.name)

        if node.args is None or (not node.args and member in ("count", "total")):
            if member == "count":
                return INT, lambda ctx: target(ctx).distinct
            if member == "total":
                return INT, lambda ctx: target(ctx).total
            raise ExpressionSyntaxError(f"Unknown property '{node.name}'", node.offset)

        args = [self._compile(arg) for arg in node.args]
        if member in ("contains", "containsall"):
            items = self._string_args(node, args)
            return BOOL, lambda ctx: target(ctx).contains(*[item(ctx) for item in items])
        if member == "containsany":
            min_count: Evaluator = lambda ctx: 1
            if args and args[0][0] == INT:
                min_count = args[0][1]
                args = args[1:]
            items = self._string_args(node, args)
            return BOOL, lambda ctx: target(ctx).contains_any(
                *[item(ctx) for item in items], min_count=min_count(ctx)
            )
        if member in ("containskey", "count"):
            if len(args) != 1:
                raise ExpressionSyntaxError(
                    f"'{node.name}' takes exactly 1 argument, got {len(args)}", node.offset
                )
            (item,) = self._string_args(node, args)
            if member == "count":
                return INT, lambda ctx: target(ctx).count(item(ctx))
            return BOOL, lambda ctx: item(ctx) in target(ctx)
        raise ExpressionSyntaxError(f"Unknown method '{node.name}'", node.offset)

    def _string_args(self, node: Member, args: List[Tuple[str, Evaluator]]) -> List[Evaluator]:
        if not args:
            raise ExpressionSyntaxError(f"'{node.name}' requires at least 1 item", node.offset)
        for position, (kind, _) in enumerate(args, 1):
            if kind != STR:
                raise ExpressionSyntaxError(
                    f"Argument {position} of '{node.name}' must be str, not {kind}", node.offset
                )
        return [evaluate for _, evaluate in args]

    def _compile_index(self, node: Index) -> Tuple[str, Evaluator]:
        kind, target = self._compile(node.target)
        if kind != SET:
            raise ExpressionSyntaxError(f"Cannot apply indexing to '{kind}'", node.offset)
        key_kind, key = self._compile(node.key)
        if key_kind != STR:
            raise ExpressionSyntaxError(f"Index must be str, not {key_kind}", node.offset)
        return INT, lambda ctx: target(ctx).count(key(ctx))

    def _compile_call(self, node: Call) -> Tuple[str, Evaluator]:
        if _normalize(node.name) != "matches":
            raise ExpressionSyntaxError(
                f"The name '{node.name}' does not exist in the current context", node.offset
            )
        if len(node.args) != 1 or not isinstance(node.args[0], Literal) or not isinstance(
            node.args[0].value, str
        ):
            raise ExpressionSyntaxError("matches() takes a single rule name literal", node.offset)
        if self.resolve_reference is None:
            raise ExpressionSyntaxError("matches() is not available here", node.offset)
        predicate = self.resolve_reference(node.args[0].value, node.args[0].offset)
        return BOOL, predicate

    def _compile_unaryop(self, node: UnaryOp) -> Tuple[str, Evaluator]:
        kind, operand = self._compile(node.operand)
        if kind != BOOL:
            raise ExpressionSyntaxError(f"Operator '!' cannot be applied to {kind}", node.offset)
        return BOOL, lambda ctx: not operand(ctx)

    def _compile_binaryop(self, node: BinaryOp) -> Tuple[str, Evaluator]:
        left_kind, left = self._compile(node.left)
        right_kind, right = self._compile(node.right)
        op = node.operator

        if op in ("&&", "||"):
            if left_kind != BOOL or right_kind != BOOL:
                raise self._operand_error(node, left_kind, right_kind)
            if op == "&&":
                return BOOL, lambda ctx: left(ctx) and right(ctx)
            return BOOL, lambda ctx: left(ctx) or right(ctx)

        if op in ("==", "!="):
            comparable = left_kind == right_kind or {left_kind, right_kind} == {STR, NULL}
            if not comparable or SET in (left_kind, right_kind):
                raise self._operand_error(node, left_kind, right_kind)
            if op == "==":
                return BOOL, lambda ctx: left(ctx) == right(ctx)
            return BOOL, lambda ctx: left(ctx) != right(ctx)

        if left_kind != INT or right_kind != INT:
            raise self._operand_error(node, left_kind, right_kind)
        if op == "+":
            return INT, lambda ctx: left(ctx) + right(ctx)
        if op == "-":
            return INT, lambda ctx: left(ctx) - right(ctx)
        if op == "<":
            return BOOL, lambda ctx: left(ctx) < right(ctx)
        if op == "<=":
            return BOOL, lambda ctx: left(ctx) <= right(ctx)
        if op == ">":
            return BOOL, lambda ctx: left(ctx) > right(ctx)
        return BOOL, lambda ctx: left(ctx) >= right(ctx)

    @staticmethod
    def _operand_error(node: BinaryOp, left_kind: str, right_kind: str) -> ExpressionSyntaxError:
        return ExpressionSyntaxError(
            f"Operator '{node.operator}' cannot be applied to operands of type "
            f"'{left_kind}' and '{right_kind}'",
            node.offset,
        )


def compile_expression(text: str) -> Predicate:
    """编译单条不含matches()引用的表达式"""
    return ExpressionCompiler().compile(text)


def compile_rule_tree(nodes: List[RuleNode]) -> None:
    """
    将整棵规则树作为一个单元编译，并把谓词挂到各节点上

    matches("name")只能引用文件顺序中更早出现且名称唯一的节点。
    任一表达式失败时不修改任何节点，抛出汇总的CompileError。

    Args:
        nodes: 按文件顺序排列的节点列表，首个为根节点

    Raises:
        CompileError: 一个或多个表达式编译失败
    """
    compiled: Dict[int, Predicate] = {}
    depths: Dict[int, int] = {}
    seen: Dict[str, List[RuleNode]] = {}
    issues: List[ExpressionIssue] = []

    for node in nodes:
        reference_depth = 0

        def resolve(name: str, offset: int) -> Predicate:
            nonlocal reference_depth
            candidates = seen.get(name, [])
            if not candidates:
                raise ExpressionSyntaxError(
                    f"No earlier rule named '{name}' to match against", offset
                )
            if len(candidates) > 1:
                raise ExpressionSyntaxError(f"Rule name '{name}' is ambiguous", offset)
            target = candidates[0]
            reference_depth = max(reference_depth, depths[target.index])
            return lambda ctx: compiled[target.index](ctx)

        compiler = ExpressionCompiler(resolve)
        depth = 0
        try:
            predicate = compiler.compile(node.expression)
            depth = compiler.max_depth + reference_depth
            if depth > MAX_DEPTH:
                raise ExpressionSyntaxError("Expression is nested too deeply through matches()")
            compiled[node.index] = predicate
        except ExpressionSyntaxError as e:
            issues.append(
                ExpressionIssue(
                    name=node.name,
                    line=node.line_number,
                    column=node.expression_column + e.offset,
                    message=e.message,
                )
            )
        depths[node.index] = depth
        seen.setdefault(node.name, []).append(node)

    if issues:
        raise CompileError(issues)

    for node in nodes:
        node.predicate = compiled[node.index]
    logger.debug(f"规则树编译完成，共{len(nodes)}个节点")
