import unittest

from sheet_intake.header_rules import (
    HeaderRule,
    HeaderRuleGroup,
    HeaderRuleValidator,
    build_rule_nodes,
    compact_header,
    equal_rows,
    is_blank_row,
)


def two_group_validator(fixed_column_count=1, **kwargs):
    groups = [
        HeaderRuleGroup([HeaderRule("a"), HeaderRule("b")]),
        HeaderRuleGroup([HeaderRule("c"), HeaderRule("d")], repeating=True),
    ]
    return HeaderRuleValidator(fixed_column_count, groups, **kwargs)


class RuleGraphTests(unittest.TestCase):
    def test_nodes_link_groups_and_wrap_around(self):
        nodes = build_rule_nodes(two_group_validator().rule_groups)

        self.assertEqual([node.value for node in nodes], ["a", "b", "c", "d"])
        self.assertEqual(nodes[0].next_indexes, (1,))
        self.assertEqual(nodes[1].next_indexes, (2,))
        self.assertEqual(nodes[2].next_indexes, (3,))
        # repeating group loops back to "c", then wraps to the first group
        self.assertEqual(nodes[3].next_indexes, (2, 0))

    def test_repeating_rule_gets_a_self_edge(self):
        groups = [HeaderRuleGroup([HeaderRule("x", repeating=True), HeaderRule("y")], repeating=True)]
        nodes = build_rule_nodes(groups)

        self.assertEqual(nodes[0].next_indexes, (0, 1))
        self.assertEqual(nodes[1].next_indexes, (0,))

    def test_single_non_repeating_group_ends_without_edges(self):
        nodes = build_rule_nodes([HeaderRuleGroup([HeaderRule("only")])])
        self.assertEqual(nodes[0].next_indexes, ())

    def test_graph_is_built_once_per_validator(self):
        validator = two_group_validator()
        nodes = validator.nodes
        validator.validate(["id"], ["id", "a", "b", "c", "d"])
        self.assertIs(validator.nodes, nodes)

    def test_empty_group_is_rejected(self):
        with self.assertRaises(ValueError):
            HeaderRuleValidator(1, [HeaderRuleGroup([])])


class ValidateTests(unittest.TestCase):
    def test_exact_template_match_without_rule_groups(self):
        validator = HeaderRuleValidator(2, [])
        self.assertTrue(validator.validate(["id", "name"], ["id", "name"]))

    def test_same_width_is_plain_equality(self):
        validator = two_group_validator()
        self.assertTrue(validator.validate(["id", "a"], ["id", "a"]))
        self.assertFalse(validator.validate(["id", "a"], ["id", "b"]))
        self.assertFalse(validator.validate(["id", "name"], ["name", "id"]))

    def test_extra_column_allowed_by_rule(self):
        groups = [HeaderRuleGroup([HeaderRule("extra1", repeating=True)], repeating=True)]
        validator = HeaderRuleValidator(2, groups, allowed_end_values=["extra1"])

        self.assertTrue(validator.validate(["id", "name"], ["id", "name", "extra1"]))
        self.assertTrue(validator.validate(["id", "name"], ["id", "name", "extra1", "extra1"]))
        self.assertFalse(validator.validate(["id", "name"], ["id", "name", "bogus"]))

    def test_extra_columns_rejected_without_rule_groups(self):
        validator = HeaderRuleValidator(2, [])
        self.assertFalse(validator.validate(["id", "name"], ["id", "name", "extra1"]))

    def test_blank_upload_cells_are_compacted_before_comparison(self):
        groups = [HeaderRuleGroup([HeaderRule("extra1")])]
        validator = HeaderRuleValidator(2, groups)
        self.assertTrue(validator.validate(["id", "name"], [" id", "", "name ", "  ", "extra1", ""]))

    def test_walk_through_repeating_groups(self):
        validator = two_group_validator()
        self.assertTrue(validator.validate(["id"], ["id", "a", "b", "c", "d"]))
        self.assertTrue(validator.validate(["id"], ["id", "a", "b", "c", "d", "c", "d"]))
        self.assertTrue(validator.validate(["id"], ["id", "a", "b", "c", "d", "a", "b", "c", "d"]))
        # the walk may start at any node
        self.assertTrue(validator.validate(["id"], ["id", "c", "d"]))

    def test_walk_rejects_value_without_edge(self):
        validator = two_group_validator()
        self.assertFalse(validator.validate(["id"], ["id", "a", "c", "d"]))
        self.assertFalse(validator.validate(["id"], ["id", "a", "b", "b", "c", "d"]))

    def test_last_value_must_be_allowed_end(self):
        validator = two_group_validator()
        self.assertFalse(validator.validate(["id"], ["id", "a", "b"]))

        relaxed = two_group_validator(allowed_end_values=["b", "d"])
        self.assertTrue(relaxed.validate(["id"], ["id", "a", "b"]))

    def test_fixed_prefix_must_match_template(self):
        validator = two_group_validator(fixed_column_count=2)
        self.assertTrue(validator.validate(["id", "name"], ["id", "name", "a", "b", "c", "d"]))
        self.assertFalse(validator.validate(["id", "name"], ["id", "title", "a", "b", "c", "d"]))

    def test_zero_fixed_columns_uses_allowed_start_values(self):
        validator = two_group_validator(fixed_column_count=0, allowed_start_values=["a"])
        self.assertTrue(validator.validate([], ["a", "b", "c", "d"]))
        self.assertFalse(validator.validate([], ["c", "d"]))
        # a template with columns cannot pair with zero fixed columns
        self.assertFalse(validator.validate(["a"], ["a", "b", "c", "d"]))

    def test_early_width_failures(self):
        validator = two_group_validator(fixed_column_count=2)
        self.assertFalse(validator.validate(["id", "name"], ["id"]))
        self.assertFalse(validator.validate(["id"], ["id", "a", "b", "c", "d"]))
        self.assertFalse(validator.validate(["id", "name", "x"], ["id", "name"]))
        self.assertFalse(HeaderRuleValidator(0, []).validate([], ["", "  "]))


class RowHelperTests(unittest.TestCase):
    def test_row_helpers(self):
        self.assertTrue(is_blank_row([]))
        self.assertTrue(is_blank_row(["", "  ", None]))
        self.assertFalse(is_blank_row(["", "x"]))
        self.assertTrue(equal_rows(["a", "b"], ["a", "b"]))
        self.assertFalse(equal_rows(["a"], ["a", ""]))
        self.assertEqual(compact_header([" a ", "", "b", "  "]), ["a", "b"])


if __name__ == "__main__":
    unittest.main()
