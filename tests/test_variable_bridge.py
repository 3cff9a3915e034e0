"""
Unit tests for carrying the current URL between nodes.
"""

import unittest

from variable_bridge import current_url_key, flatten_properties, resolve_properties
from workflow_models import WorkflowNode


class TestFlattenProperties(unittest.TestCase):

    def test_nested_wins_and_is_dropped(self):
        flat = flatten_properties({"url": "a", "selector": "x", "properties": {"url": "b"}})
        self.assertEqual(flat, {"url": "b", "selector": "x"})

    def test_only_one_level(self):
        flat = flatten_properties({"properties": {"properties": {"url": "deep"}}})
        self.assertEqual(flat, {"properties": {"url": "deep"}})


class TestResolveProperties(unittest.TestCase):

    def test_uses_recorded_url_for_page(self):
        node = WorkflowNode(id="n", type="playwright-node", properties={
            "action": "navigate", "url": "https://declared.example", "useCurrentUrl": True, "pageIndex": 1,
        })
        variables = {current_url_key(0): "https://page0.example", current_url_key(1): "https://page1.example/after"}

        props = resolve_properties(node, variables)

        self.assertEqual(props["url"], "https://page1.example/after")
        # The node itself is left alone
        self.assertEqual(node.properties["url"], "https://declared.example")

    def test_keeps_own_url_when_nothing_recorded(self):
        node = WorkflowNode(id="n", type="playwright-node", properties={
            "action": "navigate", "url": "https://declared.example", "useCurrentUrl": True,
        })
        with self.assertLogs("variable_bridge", level="WARNING"):
            props = resolve_properties(node, {})
        self.assertEqual(props["url"], "https://declared.example")

    def test_without_flag_url_is_untouched(self):
        node = WorkflowNode(id="n", type="playwright-node", properties={"action": "navigate", "url": "https://x.example"})
        props = resolve_properties(node, {current_url_key(0): "https://other.example"})
        self.assertEqual(props["url"], "https://x.example")


if __name__ == '__main__':
    unittest.main()
