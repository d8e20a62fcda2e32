"""
Tests for the traversal package.

Tests cover:
- Pre-order visiting and lazy child resolution
- Caller exclusions and once-per-pass deduplication
- Restart semantics of root and child levels
- Index failures while resolving children
- Path construction from lineage
"""

import unittest

from traversal import (
    ExclusionSet,
    PathBuilder,
    TraversalStateError,
    TreeLevelIterator,
    TreeTraversal,
    sanitize_component,
)
from tests.fakes import FakeIndex, FakeObject, FakeRepository

COLLECTION = "islandora:collectionCModel"


def _repository(*ids, **labels):
    return FakeRepository([FakeObject(i, labels.get(i, "")) for i in ids])


class TestExclusionSet(unittest.TestCase):
    def test_snapshot_is_independent_of_later_additions(self):
        exclusions = ExclusionSet(["a"])
        snapshot = exclusions.snapshot()
        exclusions.add("b")

        self.assertEqual(snapshot, frozenset({"a"}))
        self.assertIn("b", exclusions)

    def test_reset_to_mutates_in_place(self):
        exclusions = ExclusionSet(["a"])
        alias = exclusions
        exclusions.add("b")
        exclusions.add("c")
        exclusions.reset_to({"a"})

        self.assertEqual(set(alias), {"a"})
        self.assertEqual(len(alias), 1)


class TestTreeLevelIterator(unittest.TestCase):
    def setUp(self):
        self.index = FakeIndex({"a": ["c1", "c2"]})

    def test_constructor_skips_leading_excluded_ids(self):
        level = TreeLevelIterator(["x", "a"], ExclusionSet(["x"]), self.index, "alice")
        self.assertTrue(level.valid())
        self.assertEqual(level.current(), "a")

    def test_advance_adds_current_to_shared_exclusions(self):
        exclusions = ExclusionSet()
        level = TreeLevelIterator(["a", "b"], exclusions, self.index, "alice")
        level.advance()

        self.assertIn("a", exclusions)
        self.assertEqual(level.current(), "b")

    def test_current_on_exhausted_level_raises(self):
        level = TreeLevelIterator([], ExclusionSet(), self.index, "alice")
        self.assertFalse(level.valid())
        with self.assertRaises(TraversalStateError):
            level.current()

    def test_children_share_exclusion_set(self):
        exclusions = ExclusionSet(["c1"])
        root = TreeLevelIterator(["a"], exclusions, self.index, "alice")
        child = root.get_children()

        self.assertIs(child.exclusions, exclusions)
        self.assertEqual(child.current(), "c2")
        self.assertEqual(child.depth, 1)
        self.assertEqual(child.current_lineage(), ("a", "c2"))

    def test_restart_on_child_level_is_rejected(self):
        root = TreeLevelIterator(["a"], ExclusionSet(), self.index, "alice")
        child = root.get_children()
        with self.assertRaises(TraversalStateError):
            child.restart()

    def test_root_restart_restores_original_exclusions(self):
        exclusions = ExclusionSet(["z"])
        root = TreeLevelIterator(["a", "b"], exclusions, self.index, "alice")
        root.advance()
        root.advance()
        self.assertFalse(root.valid())

        root.restart()
        self.assertEqual(set(exclusions), {"z"})
        self.assertEqual(root.current(), "a")

    def test_current_path_without_builder_raises(self):
        root = TreeLevelIterator(["a"], ExclusionSet(), self.index, "alice")
        with self.assertRaises(TraversalStateError):
            root.current_path()


class TestTreeTraversal(unittest.TestCase):
    def _traversal(self, start, exclude=(), children=None, repository=None):
        repository = repository or _repository("A", "B", "C", "D", "E")
        self.index = FakeIndex(children or {})
        return TreeTraversal(start, exclude, repository, self.index, "alice")

    def test_pre_order(self):
        traversal = self._traversal(["A"], children={"A": ["B", "C"], "B": ["D"]})
        self.assertEqual([n.object_id for n in traversal], ["A", "B", "D", "C"])

    def test_excluded_start_id_is_never_yielded(self):
        traversal = self._traversal(["A", "B"], exclude=["B"], children={"A": ["C"]})
        self.assertEqual([n.object_id for n in traversal], ["A", "C"])

    def test_excluded_subtree_is_not_entered(self):
        traversal = self._traversal(["A"], exclude=["B"], children={"A": ["B"], "B": ["C"]})
        self.assertEqual([n.object_id for n in traversal], ["A"])
        self.assertNotIn(("B", "alice"), self.index.queries)

    def test_object_reachable_twice_is_visited_once(self):
        traversal = self._traversal(["D", "C"], children={"D": ["C"]})
        nodes = list(traversal)

        self.assertEqual([n.object_id for n in nodes], ["D", "C"])
        self.assertEqual(nodes[1].lineage, ("D", "C"))
        self.assertEqual(nodes[1].path, "D (D)/C (C)")

    def test_cycle_terminates(self):
        traversal = self._traversal(["A"], children={"A": ["B"], "B": ["A", "C"]})
        self.assertEqual([n.object_id for n in traversal], ["A", "B", "C"])

    def test_children_resolved_only_when_next_node_requested(self):
        traversal = self._traversal(["A"], children={"A": ["B"]})
        walk = iter(traversal)
        first = next(walk)

        self.assertEqual(first.object_id, "A")
        self.assertEqual(self.index.queries, [])

    def test_restart_yields_same_sequence(self):
        traversal = self._traversal(
            ["A", "E"], exclude=["C"], children={"A": ["B", "C"], "E": ["B", "D"]}
        )
        first = [n.object_id for n in traversal]
        traversal.restart()
        second = [n.object_id for n in traversal]

        self.assertEqual(first, ["A", "B", "E", "D"])
        self.assertEqual(first, second)
        self.assertEqual(set(traversal.exclusions), {"C", "A", "B", "E", "D"})

    def test_restart_discards_accumulated_exclusions(self):
        traversal = self._traversal(["A"], exclude=["C"], children={"A": ["B"]})
        list(traversal)
        traversal.restart()
        self.assertEqual(set(traversal.exclusions), {"C"})

    def test_index_failure_skips_subtree_but_keeps_node(self):
        traversal = self._traversal(["A", "E"], children={"A": ["B"], "E": ["D"]})
        self.index.failing.add("A")

        with self.assertLogs(level="WARNING"):
            ids = [n.object_id for n in traversal]
        self.assertEqual(ids, ["A", "E", "D"])

    def test_node_depth_and_identity_threading(self):
        repository = _repository("A", "B")
        traversal = TreeTraversal(["A"], [], repository, FakeIndex({"A": ["B"]}), "bob")
        nodes = list(traversal)
        nodes[1].content_units()

        self.assertEqual(nodes[1].depth, 1)
        self.assertTrue(all(identity == "bob" for _, identity in repository.loads))


class TestPathBuilder(unittest.TestCase):
    def test_collection_root_has_no_prefix(self):
        repository = FakeRepository(
            [
                FakeObject("col", "Photos", models=[COLLECTION], parents=["top"]),
                FakeObject("img", "Sunset"),
                FakeObject("top", "Top"),
            ]
        )
        builder = PathBuilder(repository, "alice", COLLECTION)
        self.assertEqual(builder.build(("col", "img")), "Photos (col)/Sunset (img)")

    def test_non_collection_root_gets_parent_label_prefix(self):
        repository = FakeRepository(
            [FakeObject("img", "Sunset", parents=["col"]), FakeObject("col", "Photos")]
        )
        builder = PathBuilder(repository, "alice", COLLECTION)
        self.assertEqual(builder.build(("img",)), "Photos/Sunset (img)")

    def test_unreadable_parent_drops_prefix(self):
        repository = FakeRepository([FakeObject("img", "Sunset", parents=["hidden"])])
        builder = PathBuilder(repository, "alice", COLLECTION)
        with self.assertLogs(level="WARNING"):
            self.assertEqual(builder.build(("img",)), "Sunset (img)")

    def test_unreadable_ancestor_keeps_its_id(self):
        repository = FakeRepository(
            [FakeObject("col", "Photos", models=[COLLECTION]), FakeObject("img", "Sunset")]
        )
        repository.unreadable.add("col")
        builder = PathBuilder(repository, "alice", COLLECTION)

        with self.assertLogs(level="WARNING") as logs:
            self.assertEqual(builder.build(("col", "img")), "(col)/Sunset (img)")
            self.assertEqual(builder.build(("col", "img")), "(col)/Sunset (img)")

        self.assertEqual(len(logs.output), 1)
        self.assertEqual(repository.loads.count(("col", "alice")), 1)

    def test_objects_are_loaded_once(self):
        repository = _repository("A")
        builder = PathBuilder(repository, "alice", COLLECTION)
        builder.component("A")
        builder.component("A")
        self.assertEqual(repository.loads, [("A", "alice")])

    def test_sanitize_component(self):
        self.assertEqual(sanitize_component("a/b\\c"), "a_b_c")
        self.assertEqual(sanitize_component("../etc"), "__etc")
        self.assertEqual(sanitize_component("", "fallback"), "fallback")
        self.assertEqual(len(sanitize_component("x" * 500)), 120)


if __name__ == "__main__":
    unittest.main()
