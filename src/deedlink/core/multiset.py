"""
Counting multiset used for field-name and comment frequency tallies.
"""

from collections import Counter
from typing import Any, Hashable, Iterable, Iterator, List, Optional, Tuple


def _sort_key(key: Any) -> Tuple[bool, str]:
    # Missing keys sort first, everything else by its text
    return (key is not None, "" if key is None else str(key))


class CountingSet:
    """
    A multiset that records how many times each distinct key was added.

    Iteration is in sorted key order so tables built from the keys have a
    stable column order.
    """

    def __init__(self, keys: Optional[Iterable[Hashable]] = None) -> None:
        self._counts: Counter = Counter()
        if keys is not None:
            for key in keys:
                self.add(key)

    def add(self, key: Hashable) -> int:
        """Add one occurrence of ``key`` and return its new count."""
        self._counts[key] += 1
        return self._counts[key]

    def decrement(self, key: Hashable) -> int:
        """
        Remove one occurrence of ``key`` and return its remaining count.

        A key whose count reaches zero is dropped. Decrementing a key that is
        not present is a no-op returning 0.
        """
        if key not in self._counts:
            return 0
        self._counts[key] -= 1
        if self._counts[key] <= 0:
            del self._counts[key]
            return 0
        return self._counts[key]

    def count(self, key: Hashable) -> int:
        """Number of occurrences of ``key`` (0 when absent)."""
        return self._counts.get(key, 0)

    def items(self) -> List[Tuple[Hashable, int]]:
        """Distinct keys with their counts, in sorted key order."""
        return [(key, self._counts[key]) for key in self]

    def keys_with_count(self, minimum: int) -> List[Hashable]:
        """Sorted keys that occur at least ``minimum`` times."""
        return [key for key, count in self.items() if count >= minimum]

    def copy(self) -> "CountingSet":
        clone = CountingSet()
        clone._counts = self._counts.copy()
        return clone

    def __contains__(self, key: object) -> bool:
        return key in self._counts

    def __iter__(self) -> Iterator[Hashable]:
        return iter(sorted(self._counts, key=_sort_key))

    def __len__(self) -> int:
        return len(self._counts)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CountingSet):
            return NotImplemented
        return self._counts == other._counts

    def __repr__(self) -> str:
        return f"CountingSet({dict(self.items())!r})"
