"""
Disjoint-set structure over integer identifiers.

Union-by-size with path compression keeps find() near-constant amortized.
The tree root is an implementation detail; the public representative of a
set is always its numerically smallest identifier, tracked at the root, so
results do not depend on the order in which unions happen.
"""

from typing import Dict, Hashable, Iterable, List


class UnionFind:
    """Disjoint sets with smallest-identifier representatives."""

    def __init__(self, ids: Iterable[int] = ()):
        self._parent: Dict[int, int] = {}
        self._size: Dict[int, int] = {}
        self._smallest: Dict[int, int] = {}
        for item_id in ids:
            self.make_set(item_id)

    def __len__(self) -> int:
        return len(self._parent)

    def __contains__(self, item_id: Hashable) -> bool:
        return item_id in self._parent

    def make_set(self, item_id: int) -> None:
        """Add ``item_id`` as a singleton set; no-op if already present."""
        if item_id in self._parent:
            return
        self._parent[item_id] = item_id
        self._size[item_id] = 1
        self._smallest[item_id] = item_id

    def _root(self, item_id: int) -> int:
        parent = self._parent
        root = item_id
        while parent[root] != root:
            root = parent[root]
        # Path compression
        while parent[item_id] != root:
            parent[item_id], item_id = root, parent[item_id]
        return root

    def find(self, item_id: int) -> int:
        """
        Representative of the set containing ``item_id``.

        Raises:
            KeyError: If ``item_id`` was never added
        """
        if item_id not in self._parent:
            raise KeyError(item_id)
        return self._smallest[self._root(item_id)]

    representative = find

    def union(self, a: int, b: int) -> int:
        """
        Merge the sets containing ``a`` and ``b``.

        Returns the representative of the merged set. Merging a set with
        itself is a no-op.
        """
        root_a = self._root(a)
        root_b = self._root(b)
        if root_a == root_b:
            return self._smallest[root_a]

        if self._size[root_a] < self._size[root_b]:
            root_a, root_b = root_b, root_a

        self._parent[root_b] = root_a
        self._size[root_a] += self._size.pop(root_b)
        smallest = min(self._smallest[root_a], self._smallest.pop(root_b))
        self._smallest[root_a] = smallest
        return smallest

    def connected(self, a: int, b: int) -> bool:
        return self._root(a) == self._root(b)

    def set_size(self, item_id: int) -> int:
        return self._size[self._root(item_id)]

    def groups(self) -> Dict[int, List[int]]:
        """Map each representative to its sorted members, ordered by representative."""
        grouped: Dict[int, List[int]] = {}
        for item_id in sorted(self._parent):
            grouped.setdefault(self.find(item_id), []).append(item_id)
        return grouped
