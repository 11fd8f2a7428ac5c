"""
规则树解析器测试
"""

import pytest

from decktypes.rules.errors import StructuralError
from decktypes.rules.tree_parser import ROOT_NAME, parse_rule_tree


SAMPLE_TREE = """Aggro|colors.Contains("Red")
|Burn|cards.Contains("Shock")
||Big Burn|cards["Shock"] >= 4
|$Tempo|words.Contains("Haste")
||Red Tempo|true
Control|colors.Contains("Blue")"""


class TestParseRuleTree:
    """规则树解析测试"""

    def test_root_is_inserted_first(self):
        nodes = parse_rule_tree(SAMPLE_TREE)
        root = nodes[0]

        assert root.name == ROOT_NAME
        assert root.expression == "true"
        assert root.level == 0
        assert root.index == 0
        assert root.is_root

    def test_file_order_and_indexes(self):
        nodes = parse_rule_tree(SAMPLE_TREE)

        assert [node.name for node in nodes] == [
            ROOT_NAME,
            "Aggro",
            "Burn",
            "Big Burn",
            "$Tempo",
            "Red Tempo",
            "Control",
        ]
        assert [node.index for node in nodes] == list(range(7))
        assert [node.line_number for node in nodes] == list(range(7))

    def test_linkage_and_levels(self):
        nodes = parse_rule_tree(SAMPLE_TREE)
        by_name = {node.name: node for node in nodes}

        assert by_name["Aggro"].parent is nodes[0]
        assert by_name["Burn"].parent is by_name["Aggro"]
        assert by_name["Big Burn"].parent is by_name["Burn"]
        assert by_name["$Tempo"].parent is by_name["Aggro"]
        assert by_name["Red Tempo"].parent is by_name["$Tempo"]
        assert by_name["Control"].parent is nodes[0]

        for node in nodes[1:]:
            assert node.level == node.parent.level + 1
        assert by_name["Big Burn"].level == 3

    def test_children_keep_authoring_order(self):
        nodes = parse_rule_tree(SAMPLE_TREE)
        aggro = nodes[1]
        assert [child.name for child in aggro.children] == ["Burn", "$Tempo"]
        assert [child.name for child in nodes[0].children] == ["Aggro", "Control"]

    def test_expression_split_on_first_separator(self):
        nodes = parse_rule_tree('Either|cards.Contains("A") || cards.Contains("B")')
        assert nodes[1].name == "Either"
        assert nodes[1].expression == 'cards.Contains("A") || cards.Contains("B")'

    def test_structural_flag_and_path(self):
        nodes = parse_rule_tree(SAMPLE_TREE)
        by_name = {node.name: node for node in nodes}

        assert by_name["$Tempo"].is_structural
        assert not by_name["Red Tempo"].is_structural
        assert by_name["Red Tempo"].path() == ["Aggro", "$Tempo", "Red Tempo"]
        assert nodes[0].path() == []

    def test_iter_nodes_is_preorder(self):
        nodes = parse_rule_tree(SAMPLE_TREE)
        assert list(nodes[0].iter_nodes()) == nodes

    def test_expression_column(self):
        nodes = parse_rule_tree("X|true\n|Child|  colors.Count == 1")
        assert nodes[1].expression_column == 3
        assert nodes[2].expression_column == 10

    def test_custom_markers(self):
        text = "A:true\n.B:false\n..C:true"
        nodes = parse_rule_tree(
            text, root_name="Root", depth_marker=".", separator=":", structural_marker="#"
        )
        assert nodes[0].name == "Root"
        assert nodes[3].name == "C"
        assert nodes[3].level == 3

    def test_windows_line_endings(self):
        nodes = parse_rule_tree("A|true\r\n|B|false\r\n")
        assert [node.expression for node in nodes] == ["true", "true", "false"]

    def test_only_cr_and_lf_break_lines(self):
        text = "A|words.Contains(\"x\x0cy\u2028z\")\r|B|cards.Contains(\"a\x85b\")\n"
        nodes = parse_rule_tree(text)

        assert len(nodes) == 3
        assert nodes[1].expression == 'words.Contains("x\x0cy\u2028z")'
        assert nodes[2].parent is nodes[1]
        assert nodes[2].line_number == 2

    def test_deep_tree_iterates_in_preorder(self):
        text = "\n".join("|" * depth + f"N{depth}|true" for depth in range(1200))
        nodes = parse_rule_tree(text)

        assert nodes[-1].level == 1200
        assert list(nodes[0].iter_nodes()) == nodes


class TestStructuralErrors:
    """结构错误测试"""

    def test_skipped_level(self):
        with pytest.raises(StructuralError) as exc_info:
            parse_rule_tree("A|true\n||B|true")
        assert exc_info.value.line_number == 2
        assert exc_info.value.line == "||B|true"
        assert "||B|true" in str(exc_info.value)

    def test_first_line_cannot_be_nested(self):
        with pytest.raises(StructuralError) as exc_info:
            parse_rule_tree("|A|true")
        assert exc_info.value.line_number == 1

    def test_missing_separator(self):
        with pytest.raises(StructuralError) as exc_info:
            parse_rule_tree("A|true\n|B")
        assert exc_info.value.reason == "missing separator"
        assert exc_info.value.line_number == 2

    def test_empty_expression(self):
        with pytest.raises(StructuralError):
            parse_rule_tree("A|   ")

    def test_blank_line_is_a_rule_line_by_default(self):
        with pytest.raises(StructuralError) as exc_info:
            parse_rule_tree("A|true\n\nB|true")
        assert exc_info.value.line_number == 2

    def test_blank_lines_can_be_ignored(self):
        nodes = parse_rule_tree("A|true\n\n|B|true\n", ignore_blank_lines=True)
        assert nodes[2].parent is nodes[1]
        assert nodes[2].line_number == 3

    def test_depth_after_pop(self):
        # 回到浅层后，不能直接跳到原来的深层的下一层
        with pytest.raises(StructuralError):
            parse_rule_tree("A|true\n|B|true\n||C|true\nD|true\n||E|true")

    def test_to_dict(self):
        with pytest.raises(StructuralError) as exc_info:
            parse_rule_tree("oops")
        data = exc_info.value.to_dict()
        assert data["error"] == "StructuralError"
        assert data["line"] == "oops"
