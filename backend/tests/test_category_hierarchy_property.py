"""
Property-based tests for the category forest
Property: building a tree from any acyclic parent assignment keeps every
category exactly once, nests it under its parent, and orders siblings.
Property: any parent cycle is reported instead of looping.
"""
from datetime import timedelta

import pytest
from hypothesis import given, settings, strategies as st
from hypothesis.strategies import composite

from conftest import NOW, make_category
from core.exceptions import CorruptHierarchyException
from services.categories import build_tree, check_hierarchy, compute_level, flatten_tree, sibling_key


@composite
def category_forest(draw, max_size=25):
    """Categories where each one may only point at an earlier one, so no cycles."""
    size = draw(st.integers(min_value=0, max_value=max_size))
    categories = []
    for index in range(size):
        parent = None
        if categories and draw(st.booleans()):
            parent = categories[draw(st.integers(min_value=0, max_value=len(categories) - 1))]
        categories.append(make_category(
            f"cat{index}",
            parent=parent,
            sort_order=draw(st.integers(min_value=0, max_value=3)),
            created_at=NOW + timedelta(minutes=draw(st.integers(min_value=0, max_value=5))),
        ))
    return categories


def _nodes(nodes):
    for node in nodes:
        yield node
        yield from _nodes(node.children)


class TestCategoryHierarchyProperty:
    @given(category_forest())
    @settings(max_examples=100, deadline=None)
    def test_round_trip(self, categories):
        tree = build_tree(categories, max_depth=32)

        assert sorted(flatten_tree(tree), key=str) == sorted(
            [(c.parent_id, c.id) for c in categories], key=str
        )

    @given(category_forest())
    @settings(max_examples=100, deadline=None)
    def test_levels_and_sibling_order(self, categories):
        by_id = {c.id: c for c in categories}
        tree = build_tree(categories, max_depth=32)

        for node in _nodes(tree):
            parent = by_id.get(node.parent_id)
            assert node.level == compute_level(parent)
            keys = [sibling_key(by_id[child.id]) for child in node.children]
            assert keys == sorted(keys)

        root_keys = [sibling_key(by_id[root.id]) for root in tree]
        assert root_keys == sorted(root_keys)

    @given(category_forest(), st.data())
    @settings(max_examples=50, deadline=None)
    def test_subtree_contains_only_descendants(self, categories, data):
        if not categories:
            return
        root = data.draw(st.sampled_from(categories))
        subtree = build_tree(categories, root_id=root.id, max_depth=32)

        assert [node.id for node in subtree] == [root.id]
        for node in _nodes(subtree[0].children):
            # walk up until the chosen root is met
            current = next(c for c in categories if c.id == node.id)
            while current.id != root.id:
                assert current.parent_id is not None
                current = next(c for c in categories if c.id == current.parent_id)

    @given(st.integers(min_value=1, max_value=10))
    def test_cycle_detected(self, length):
        chain = [make_category("cat0")]
        for index in range(1, length):
            chain.append(make_category(f"cat{index}", parent=chain[-1]))
        chain[0].parent_id = chain[-1].id

        with pytest.raises(CorruptHierarchyException):
            build_tree(chain, max_depth=32)

    def test_depth_limit(self):
        chain = [make_category("cat0")]
        for index in range(1, 6):
            chain.append(make_category(f"cat{index}", parent=chain[-1]))

        check_hierarchy(chain, max_depth=5)
        with pytest.raises(CorruptHierarchyException):
            check_hierarchy(chain, max_depth=4)
