from collections import OrderedDict
from contextlib import contextmanager
from typing import Any, Hashable, Iterator, Optional, Set


class ReentrancyGuard:
    """
    Tracks which keys are being processed on the current call stack.

    ``enter(key)`` yields False when the key is already active, so a nested
    price read for the same product can fall through to the base price.
    """

    def __init__(self):
        self._active: Set[Hashable] = set()

    @contextmanager
    def enter(self, key: Hashable) -> Iterator[bool]:
        if key in self._active:
            yield False
            return
        self._active.add(key)
        try:
            yield True
        finally:
            self._active.discard(key)


class PassGuard:
    """Remembers the result of recent recalculation passes by pass id."""

    def __init__(self, max_passes: int = 64):
        self.max_passes = max_passes
        self._results: "OrderedDict[Hashable, Any]" = OrderedDict()

    def get(self, pass_id: Hashable) -> Optional[Any]:
        return self._results.get(pass_id)

    def store(self, pass_id: Hashable, result: Any) -> None:
        self._results[pass_id] = result
        self._results.move_to_end(pass_id)
        while len(self._results) > self.max_passes:
            self._results.popitem(last=False)
