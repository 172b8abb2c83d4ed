import pytest

from core.union_find import UnionFind


def test_singletons():
    uf = UnionFind([3, 1, 2])
    assert len(uf) == 3
    assert uf.find(3) == 3
    assert uf.groups() == {1: [1], 2: [2], 3: [3]}


def test_representative_is_smallest_id_regardless_of_union_order():
    a = UnionFind(range(1, 6))
    a.union(5, 4)
    a.union(4, 3)
    a.union(3, 1)

    b = UnionFind(range(1, 6))
    b.union(1, 3)
    b.union(4, 5)
    b.union(3, 5)

    for uf in (a, b):
        assert all(uf.find(i) == 1 for i in (1, 3, 4, 5))
        assert uf.find(2) == 2
    assert a.groups() == b.groups() == {1: [1, 3, 4, 5], 2: [2]}


def test_union_returns_representative():
    uf = UnionFind([10, 7, 8])
    assert uf.union(10, 8) == 8
    assert uf.union(10, 7) == 7
    assert uf.representative(8) == 7


def test_union_with_itself_is_noop():
    uf = UnionFind([1, 2])
    uf.union(1, 2)
    assert uf.union(2, 1) == 1
    assert uf.set_size(2) == 2


def test_connected_and_set_size():
    uf = UnionFind(range(6))
    uf.union(0, 1)
    uf.union(2, 3)
    uf.union(1, 3)
    assert uf.connected(0, 2)
    assert not uf.connected(0, 4)
    assert uf.set_size(3) == 4
    assert uf.set_size(5) == 1


def test_make_set_is_idempotent():
    uf = UnionFind([1, 2])
    uf.union(1, 2)
    uf.make_set(2)
    assert uf.find(2) == 1
    assert 2 in uf
    assert 9 not in uf


def test_find_unknown_raises_key_error():
    with pytest.raises(KeyError):
        UnionFind([1]).find(2)


def test_long_chain_compresses():
    uf = UnionFind(range(1000))
    for i in range(999, 0, -1):
        uf.union(i, i - 1)
    assert uf.find(999) == 0
    assert uf.groups() == {0: list(range(1000))}
