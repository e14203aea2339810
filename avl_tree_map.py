import logging
from abc import abstractmethod
from collections.abc import (Callable, ItemsView, Iterable, Iterator, KeysView, Mapping, MappingView, MutableMapping,
                             ValuesView)
from typing import Any, cast, Generic, Optional, Protocol, TypeVar

logger = logging.getLogger(__name__)


class ComparableKeyType(Protocol):
    @abstractmethod
    def __lt__(self, other: Any, /) -> bool: ...


K = TypeVar('K')
V = TypeVar('V')

# comparator(a, b) returns a negative number, zero, or a positive number as a is less than, equal to, or greater than b
Comparator = Callable[[Any, Any], int]


class ConcurrentModificationError(RuntimeError):
    """Raised by an iterator whose map was structurally modified by anything other than the iterator itself."""


class IllegalStateError(RuntimeError):
    """Raised when an iterator's remove() is called without a preceding next()."""


def natural_order(a: ComparableKeyType, b: ComparableKeyType) -> int:
    """Compare two keys using their own ordering (only __lt__ is required). Returns a negative number, zero, or a
    positive number like a comparator.
    """
    try:
        if a < b:
            return -1
        if b < a:
            return 1
    except TypeError as e:
        raise TypeError(f'Keys {a!r} and {b!r} are not comparable; supply a comparator for this key type') from e
    return 0


def _height(node: 'AvlTreeMapNode | None') -> int:
    return node.height if node is not None else 0


class AvlTreeMapNode(Generic[K, V]):
    """A node of the tree. It is also the live entry handed out by AvlTreeMap.entries(), so the value can be replaced
    in place with set_value().
    """
    __slots__ = 'key', 'value', 'left', 'right', 'parent', 'height'

    def __init__(self, key: K, value: V):
        self.key: K = key
        self.value: V = value
        self.left: 'None | AvlTreeMapNode[K, V]' = None
        self.right: 'None | AvlTreeMapNode[K, V]' = None
        # only None for the root; only used to walk the tree, never to decide what owns a node
        self.parent: 'None | AvlTreeMapNode[K, V]' = None
        # number of levels in the subtree rooted here: 1 for a leaf, and a missing child counts as 0
        self.height: int = 1

    def __str__(self):
        return f'{self.__class__.__name__}({self.key!r}: {self.value!r})'

    def __repr__(self):
        return str(self)

    def set_value(self, value: V) -> V:
        """Replace the value of this entry. Returns the old value."""
        old = self.value
        self.value = value
        return old

    def successor(self) -> 'AvlTreeMapNode[K, V] | None':
        """Get the node with the next greater key, or None if this node holds the greatest key."""
        if self.right is not None:
            # the least key in the right subtree
            node = self.right
            while node.left is not None:
                node = node.left
            return node
        # otherwise climb until we arrive from a left child
        child = self
        parent = self.parent
        while parent is not None and child is parent.right:
            child = parent
            parent = parent.parent
        return parent

    def predecessor(self) -> 'AvlTreeMapNode[K, V] | None':
        """Get the node with the next lesser key, or None if this node holds the least key."""
        if self.left is not None:
            # the greatest key in the left subtree
            node = self.left
            while node.right is not None:
                node = node.right
            return node
        child = self
        parent = self.parent
        while parent is not None and child is parent.left:
            child = parent
            parent = parent.parent
        return parent

    def get_children(self) -> tuple['AvlTreeMapNode[K, V]', ...]:
        """Get a tuple of this node's children. May have 0, 1, or 2 elements. If it has 2 children, the returned order
        will always be (left, right).
        """
        return tuple(i for i in [self.left, self.right] if i is not None)

    def get_balance(self) -> int:
        """Get the balance of this node from the cached heights of its children. The convention is left height - right
        height, so a positive balance is left heavy and a negative balance is right heavy.
        """
        return _height(self.left) - _height(self.right)

    def walk(self) -> Iterator['AvlTreeMapNode[K, V]']:
        """Yield every node of the subtree rooted here, parents before children. No ordering by key."""
        stack: 'list[AvlTreeMapNode[K, V]]' = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(node.get_children())

    def _calculate_height(self) -> int:
        """Count the levels of this subtree by walking it instead of reading the height field. This should only be used
        for testing since it requires walking the tree.
        """
        depth = 1
        next_level = list(self.get_children())
        while next_level:
            depth += 1
            next_level = [n for node in next_level for n in node.get_children()]
        return depth

    def _calculate_balance(self) -> int:
        """Calculate the balance of this node without checking the height fields. Testing only."""
        return ((self.left._calculate_height() if self.left is not None else 0)
                - (self.right._calculate_height() if self.right is not None else 0))

    def _attach(self, left: 'AvlTreeMapNode[K, V] | None', right: 'AvlTreeMapNode[K, V] | None'):
        """Make left and right the children of self, fix their parent links, and recompute the height of self from
        theirs. Assumes the heights of left and right are correct.
        """
        self.left = left
        if left is not None:
            left.parent = self
        self.right = right
        if right is not None:
            right.parent = self
        self.height = max(_height(left), _height(right)) + 1

    def _rebalance(self, left: 'AvlTreeMapNode[K, V] | None',
                   right: 'AvlTreeMapNode[K, V] | None') -> 'AvlTreeMapNode[K, V]':
        """Install left and right as the children of self, rotating if their heights differ by two. Both subtrees must
        already be balanced and differ in height by at most two (true after a single insertion or deletion below).

        Returns the root of the rebalanced subtree, which is self unless a rotation occured. The parent link of the
        returned node is the caller's job.
        """
        hl = _height(left)
        hr = _height(right)
        if hl > hr + 1:
            assert(hl == hr + 2)
            return self.__rotate_left_heavy(cast(AvlTreeMapNode[K, V], left), right)
        if hr > hl + 1:
            assert(hr == hl + 2)
            return self.__rotate_right_heavy(left, cast(AvlTreeMapNode[K, V], right))
        self._attach(left, right)
        return self

    def __rotate_left_heavy(self, tl: 'AvlTreeMapNode[K, V]',
                            tr: 'AvlTreeMapNode[K, V] | None') -> 'AvlTreeMapNode[K, V]':
        """Restore balance when height(tl) == height(tr) + 2. Returns the new subtree root."""
        tll = tl.left
        tlr = tl.right
        if _height(tll) >= _height(tlr):
            # single rotation; the equal case only happens after a deletion
            #        *t              tl
            #      tl   tr   =>   tll   *t
            #   tll  tlr              tlr  tr
            self._attach(tlr, tr)
            tl._attach(tll, self)
            return tl
        # double rotation; tlr is the taller child so it exists
        #          *t                   tlr
        #       tl    tr     =>      tl      *t
        #    tll  tlr             tll  x    y  tr
        #        x   y
        tlr = cast(AvlTreeMapNode[K, V], tlr)
        x = tlr.left
        y = tlr.right
        tl._attach(tll, x)
        self._attach(y, tr)
        tlr._attach(tl, self)
        return tlr

    def __rotate_right_heavy(self, tl: 'AvlTreeMapNode[K, V] | None',
                             tr: 'AvlTreeMapNode[K, V]') -> 'AvlTreeMapNode[K, V]':
        """Restore balance when height(tr) == height(tl) + 2. Mirror of __rotate_left_heavy."""
        trl = tr.left
        trr = tr.right
        if _height(trr) >= _height(trl):
            #      *t                    tr
            #    tl   tr       =>     *t    trr
            #       trl  trr        tl  trl
            self._attach(tl, trl)
            tr._attach(self, trr)
            return tr
        #      *t                      trl
        #    tl    tr        =>     *t      tr
        #        trl  trr         tl  x    y  trr
        #       x   y
        trl = cast(AvlTreeMapNode[K, V], trl)
        x = trl.left
        y = trl.right
        self._attach(tl, x)
        tr._attach(y, trr)
        trl._attach(self, tr)
        return trl


class AvlTreeMap(MutableMapping, Generic[K, V]):
    """Ordered map backed by an AVL tree. Lookup, insertion and deletion are O(log n), and iteration is in ascending key
    order (descending with reversed()).

    Keys are ordered by the comparator if one is given, otherwise by their own ordering. Keys can not be None; values
    can be anything, including None.

    This class is not thread safe and does no locking; callers sharing a map between threads must synchronize access
    themselves. Iterators are fail-fast: each one remembers the map's modification count and raises
    ConcurrentModificationError on its next call if the map was structurally changed (an insertion, a removal, or
    clear()) by anything other than that iterator's own remove(). This is only a check to catch bugs, not a guarantee.
    Replacing the value of an existing key is not a structural change.
    """
    __slots__ = '_root', '_comparator', '_compare', '_size', '_modifications'

    def __init__(self, init: 'Mapping[K, V] | Iterable[tuple[K, V]] | None' = None,
                 comparator: Optional[Comparator] = None):
        """Initialize the map, optionally with a comparator and a mapping or iterable of (key, value) pairs to initially
        insert.
        """
        if comparator is not None and not callable(comparator):
            raise TypeError(f'comparator must be callable, got {comparator!r}')
        self._root: 'AvlTreeMapNode[K, V] | None' = None
        self._comparator = comparator
        # resolved once here so no search has to check which ordering is in use
        self._compare: Comparator = comparator if comparator is not None else natural_order
        self._size = 0
        self._modifications = 0
        if init is not None:
            self.put_all(init)

    def __len__(self):
        return self._size

    def __iter__(self) -> 'AvlTreeMapIterator[K]':
        return _KeyIterator(self, self._first_node())

    def __reversed__(self) -> 'AvlTreeMapIterator[K]':
        return _KeyIterator(self, self._last_node(), reverse=True)

    def __contains__(self, key: object) -> bool:
        return self.contains_key(key)

    def __getitem__(self, key: K) -> V:
        self._check_key(key)
        node = self._get_node(key)
        if node is None:
            raise KeyError(key)
        return node.value

    def __setitem__(self, key: K, value: V):
        self.put(key, value)

    def __delitem__(self, key: K):
        self._check_key(key)
        if self._remove_node(key) is None:
            raise KeyError(key)

    def __str__(self):
        entries = ', '.join(f'{k!r}: {v!r}' for k, v in self.items())
        return f'{self.__class__.__name__}({{{entries}}})'

    def __repr__(self):
        return str(self)

    @property
    def comparator(self) -> Optional[Comparator]:
        """The comparator given at construction, or None if keys use their own ordering."""
        return self._comparator

    @property
    def height(self) -> int:
        """Number of levels in the tree; 0 when empty."""
        return _height(self._root)

    @staticmethod
    def _check_key(key: Any):
        if key is None:
            raise ValueError('key cannot be None')

    def _first_node(self) -> 'AvlTreeMapNode[K, V] | None':
        node = self._root
        if node is not None:
            while node.left is not None:
                node = node.left
        return node

    def _last_node(self) -> 'AvlTreeMapNode[K, V] | None':
        node = self._root
        if node is not None:
            while node.right is not None:
                node = node.right
        return node

    def _get_node(self, key: K) -> 'AvlTreeMapNode[K, V] | None':
        compare = self._compare
        node = self._root
        while node is not None:
            rc = compare(key, node.key)
            if rc == 0:
                return node
            # lesser keys are always in the left subtree, greater keys in the right subtree
            node = node.left if rc < 0 else node.right
        return None

    def _find_value_node(self, value: Any) -> 'AvlTreeMapNode[K, V] | None':
        """Get the node with the least key whose value is value, or None."""
        node = self._first_node()
        while node is not None:
            if node.value is value or node.value == value:
                return node
            node = node.successor()
        return None

    def _set_root(self, root: 'AvlTreeMapNode[K, V] | None'):
        if root is not None:
            root.parent = None
        self._root = root

    def _insert(self, key: K, value: V,
                node: 'AvlTreeMapNode[K, V] | None') -> tuple[Optional[V], 'AvlTreeMapNode[K, V]']:
        """Insert or replace key in the subtree rooted at node.

        Returns (previous_value, new_root), where previous_value is the value replaced (None if the key is new) and
        new_root is the root of the subtree after rebalancing.
        """
        if node is None:
            self._size += 1
            self._modifications += 1
            return None, AvlTreeMapNode(key, value)
        rc = self._compare(key, node.key)
        if rc == 0:
            # only the value changes, so the heights are still correct
            return node.set_value(value), node
        if rc < 0:
            previous, left = self._insert(key, value, node.left)
            return previous, node._rebalance(left, node.right)
        previous, right = self._insert(key, value, node.right)
        return previous, node._rebalance(node.left, right)

    def _delete(self, key: K, node: 'AvlTreeMapNode[K, V] | None') -> tuple[
            'AvlTreeMapNode[K, V] | None', 'AvlTreeMapNode[K, V] | None']:
        """Delete key from the subtree rooted at node.

        Returns (removed, new_root), where removed is the detached node that held the key (None if the key was not
        found, in which case the subtree is untouched) and new_root is the root of the subtree after rebalancing.
        """
        if node is None:
            return None, None
        rc = self._compare(key, node.key)
        if rc < 0:
            removed, left = self._delete(key, node.left)
            if removed is None:
                return None, node
            return removed, node._rebalance(left, node.right)
        if rc > 0:
            removed, right = self._delete(key, node.right)
            if removed is None:
                return None, node
            return removed, node._rebalance(node.left, right)
        if node.left is None:
            # the right subtree (possibly empty) takes this node's place; it is already balanced
            subtree = node.right
        else:
            # Splice out the in-order predecessor and reuse that node object as the root of this subtree. Its own key
            # and value move with it, so the only node that leaves the tree is the one holding the removed key, and
            # every other node an iterator may be holding still holds the same entry.
            predecessor, rest = self._delete_largest(node.left)
            subtree = predecessor._rebalance(rest, node.right)
        self._size -= 1
        self._modifications += 1
        node.left = node.right = node.parent = None
        return node, subtree

    def _delete_largest(self, node: 'AvlTreeMapNode[K, V]') -> tuple[
            'AvlTreeMapNode[K, V]', 'AvlTreeMapNode[K, V] | None']:
        """Unlink the node with the greatest key from the subtree rooted at node.

        Returns (largest, new_root), where new_root is the rest of the subtree, rebalanced at every level.
        """
        if node.right is None:
            # the left subtree (if any) takes the largest node's place
            return node, node.left
        largest, right = self._delete_largest(node.right)
        return largest, node._rebalance(node.left, right)

    def _remove_node(self, key: K) -> 'AvlTreeMapNode[K, V] | None':
        removed, root = self._delete(key, self._root)
        self._set_root(root)
        return removed

    def size(self) -> int:
        return self._size

    def is_empty(self) -> bool:
        return self._size == 0

    def contains_key(self, key: object) -> bool:
        """Return True if key is in the map. O(log n)."""
        self._check_key(key)
        return self._get_node(cast(K, key)) is not None

    def contains_value(self, value: object) -> bool:
        """Return True if any key maps to value. This is a linear scan."""
        return self._find_value_node(value) is not None

    def get(self, key: K, default: Any = None) -> Any:
        """Return the value for key, or default if the key is not present."""
        self._check_key(key)
        node = self._get_node(key)
        return node.value if node is not None else default

    def put(self, key: K, value: V) -> Optional[V]:
        """Associate value with key. Returns the previous value, or None if the key was not present."""
        self._check_key(key)
        previous, root = self._insert(key, value, self._root)
        self._set_root(root)
        return previous

    def remove(self, key: K) -> Optional[V]:
        """Remove key from the map. Returns the removed value, or None if the key was not present."""
        self._check_key(key)
        removed = self._remove_node(key)
        return removed.value if removed is not None else None

    def put_all(self, other: 'Mapping[K, V] | Iterable[tuple[K, V]]'):
        """Insert every entry of a mapping or an iterable of (key, value) pairs, replacing existing values."""
        pairs = other.items() if isinstance(other, Mapping) else other
        for key, value in pairs:
            self.put(key, value)

    def clear(self):
        """Remove every entry. Iterators created before this call will fail on their next call."""
        logger.debug('Clearing %s of %d entries', self.__class__.__name__, self._size)
        self._root = None
        self._size = 0
        self._modifications += 1

    def first_key(self) -> Optional[K]:
        """Return the least key, or None if the map is empty."""
        node = self._first_node()
        return node.key if node is not None else None

    def last_key(self) -> Optional[K]:
        """Return the greatest key, or None if the map is empty."""
        node = self._last_node()
        return node.key if node is not None else None

    def keys(self) -> 'AvlTreeMapKeysView[K]':
        return AvlTreeMapKeysView(self)

    def values(self) -> 'AvlTreeMapValuesView[V]':
        return AvlTreeMapValuesView(self)

    def items(self) -> 'AvlTreeMapItemsView[K, V]':
        return AvlTreeMapItemsView(self)

    def entries(self) -> 'AvlTreeMapEntriesView[K, V]':
        """A view of the live entries. Setting a value through an entry updates the map."""
        return AvlTreeMapEntriesView(self)

    @staticmethod
    def test(iters=1, iters_per_iter=1000, delete_prob=.1, print_time=True):
        """Run a randomized check against a dict. Will throw an AssertionError if there is an error."""
        import random
        import time
        start_time = time.time()
        for _ in range(iters):
            expected: dict[int, int] = {}
            tree_map: AvlTreeMap[int, int] = AvlTreeMap()
            # the map should start out empty
            assert(len(tree_map) == 0)
            assert(tree_map._root is None)
            # insert and remove a group of keys, in both the map and a dict
            for step in range(iters_per_iter):
                if random.random() <= delete_prob:
                    if expected:
                        # making a random choice from a dict is a O(N) operation, but for a test, it's fine
                        key = random.choice(tuple(expected))
                        assert(tree_map.remove(key) == expected.pop(key))
                else:
                    key = random.randint(-100000, 100000)
                    assert(tree_map.put(key, step) == expected.get(key))
                    expected[key] = step
            assert(len(tree_map) == len(expected))
            assert(list(tree_map.items()) == sorted(expected.items()))
            assert(list(reversed(tree_map)) == sorted(expected, reverse=True))
            nodes = list(tree_map._root.walk()) if tree_map._root is not None else []
            assert(len(nodes) == len(expected))
            none_parent_count = 0
            for node in nodes:
                # the balance should be -1, 0, or 1, and the cached heights should match the real ones
                balance = node.get_balance()
                assert(balance == node._calculate_balance())
                assert(abs(balance) <= 1)
                assert(node.height == node._calculate_height())
                if node.parent is None:
                    none_parent_count += 1
                else:
                    assert(node.parent.left is node or node.parent.right is node)
                if node.left is not None:
                    assert(node.left.key < node.key)
                if node.right is not None:
                    assert(node.key < node.right.key)
            # exactly one node (the root) has no parent, unless the map is empty
            assert(none_parent_count == 1 or not expected)
            for key, value in expected.items():
                # every key should be found, not be inserted again, and be able to be removed
                assert(key in tree_map)
                assert(tree_map.put(key, value) == value)
                assert(tree_map.remove(key) == value)
            # after removing everything, the map should be empty
            assert(len(tree_map) == 0)
            assert(tree_map._root is None)
            assert(list(tree_map) == [])
            assert(not tree_map)
        end_time = time.time()
        total_time = end_time - start_time
        if print_time:
            print(f'Test successful with {iters} iterations and {iters_per_iter} steps per iteration')
            print(f'Total time of {total_time:.2f}s and average time of {(total_time / iters):.2f}s per iteration')


class AvlTreeMapIterator(Iterator, Generic[V]):
    """Fail-fast in-order iterator over an AvlTreeMap. Besides the iterator protocol it supports has_next() and remove()
    (removes the last returned entry from the map).
    """
    __slots__ = '_map', '_next', '_last_returned', '_expected_modifications', '_reverse'

    def __init__(self, tree_map: AvlTreeMap, start: Optional[AvlTreeMapNode], reverse: bool = False):
        self._map = tree_map
        self._next = start
        self._last_returned: Optional[AvlTreeMapNode] = None
        self._expected_modifications = tree_map._modifications
        self._reverse = reverse

    @abstractmethod
    def _project(self, node: AvlTreeMapNode) -> V: ...

    def _check_modifications(self):
        if self._map._modifications != self._expected_modifications:
            logger.debug('Stale iterator: expected %d modifications, map has %d', self._expected_modifications,
                         self._map._modifications)
            raise ConcurrentModificationError(f'{self._map.__class__.__name__} changed during iteration')

    def has_next(self) -> bool:
        self._check_modifications()
        return self._next is not None

    def __next__(self) -> V:
        self._check_modifications()
        node = self._next
        if node is None:
            raise StopIteration
        self._next = node.predecessor() if self._reverse else node.successor()
        self._last_returned = node
        return self._project(node)

    def remove(self):
        """Remove the entry last returned by next() from the map, using the map's own deletion."""
        if self._last_returned is None:
            raise IllegalStateError('remove() called without a preceding next()')
        self._check_modifications()
        self._map._remove_node(self._last_returned.key)
        self._expected_modifications = self._map._modifications
        self._last_returned = None


class _KeyIterator(AvlTreeMapIterator):
    __slots__ = ()

    def _project(self, node):
        return node.key


class _ValueIterator(AvlTreeMapIterator):
    __slots__ = ()

    def _project(self, node):
        return node.value


class _ItemIterator(AvlTreeMapIterator):
    __slots__ = ()

    def _project(self, node):
        return node.key, node.value


class _EntryIterator(AvlTreeMapIterator):
    __slots__ = ()

    def _project(self, node):
        return node


class AvlTreeMapKeysView(KeysView, Generic[K]):
    __slots__ = ()
    _mapping: AvlTreeMap

    def __iter__(self) -> AvlTreeMapIterator[K]:
        return _KeyIterator(self._mapping, self._mapping._first_node())

    def __reversed__(self) -> AvlTreeMapIterator[K]:
        return _KeyIterator(self._mapping, self._mapping._last_node(), reverse=True)

    def discard(self, key: K) -> bool:
        """Remove key from the map. Return True if it was present."""
        self._mapping._check_key(key)
        return self._mapping._remove_node(key) is not None

    def clear(self):
        self._mapping.clear()


class AvlTreeMapValuesView(ValuesView, Generic[V]):
    __slots__ = ()
    _mapping: AvlTreeMap

    def __iter__(self) -> AvlTreeMapIterator[V]:
        return _ValueIterator(self._mapping, self._mapping._first_node())

    def __reversed__(self) -> AvlTreeMapIterator[V]:
        return _ValueIterator(self._mapping, self._mapping._last_node(), reverse=True)

    def __contains__(self, value: object) -> bool:
        return self._mapping.contains_value(value)

    def remove(self, value: V) -> bool:
        """Remove the entry with the least key whose value is value. Return True if one was removed."""
        node = self._mapping._find_value_node(value)
        if node is None:
            return False
        self._mapping._remove_node(node.key)
        return True

    def clear(self):
        self._mapping.clear()


class AvlTreeMapItemsView(ItemsView, Generic[K, V]):
    __slots__ = ()
    _mapping: AvlTreeMap

    def __iter__(self) -> AvlTreeMapIterator[tuple[K, V]]:
        return _ItemIterator(self._mapping, self._mapping._first_node())

    def __reversed__(self) -> AvlTreeMapIterator[tuple[K, V]]:
        return _ItemIterator(self._mapping, self._mapping._last_node(), reverse=True)

    def add(self, item: tuple[K, V]) -> bool:
        """Put a (key, value) pair. Return True if the key was not already present."""
        key, value = item
        old_size = len(self._mapping)
        self._mapping.put(key, value)
        return len(self._mapping) > old_size

    def discard(self, item: tuple[K, V]) -> bool:
        """Remove the pair's key only if it currently maps to the pair's value. Return True if it was removed."""
        key, value = item
        self._mapping._check_key(key)
        node = self._mapping._get_node(key)
        if node is None or not (node.value is value or node.value == value):
            return False
        self._mapping._remove_node(key)
        return True

    def clear(self):
        self._mapping.clear()


class AvlTreeMapEntriesView(MappingView, Generic[K, V]):
    """Live AvlTreeMapNode entries in key order."""
    __slots__ = ()
    _mapping: AvlTreeMap

    def __iter__(self) -> AvlTreeMapIterator[AvlTreeMapNode[K, V]]:
        return _EntryIterator(self._mapping, self._mapping._first_node())

    def __reversed__(self) -> AvlTreeMapIterator[AvlTreeMapNode[K, V]]:
        return _EntryIterator(self._mapping, self._mapping._last_node(), reverse=True)

    def __contains__(self, entry: object) -> bool:
        # an entry is contained if the map has its key mapped to the same value
        if not isinstance(entry, AvlTreeMapNode):
            return False
        node = self._mapping._get_node(entry.key)
        return node is not None and (node.value is entry.value or node.value == entry.value)

    def clear(self):
        self._mapping.clear()


if __name__ == '__main__':
    AvlTreeMap.test()
