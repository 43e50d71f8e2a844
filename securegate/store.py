"""
Repository abstraction for shared in-process state

Approval records, sessions, circuit-breaker state and the review queue all
live behind a Repository so the same logic can run against an in-memory map
or a shared transactional store.
"""
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Generic, Iterator, List, Optional, Tuple, TypeVar

V = TypeVar("V")


class Repository(ABC, Generic[V]):
    """Keyed store with an atomic read-modify-write primitive"""

    @abstractmethod
    def get(self, key: str) -> Optional[V]:
        pass

    @abstractmethod
    def put(self, key: str, value: V) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        pass

    @abstractmethod
    def update(self, key: str, fn: Callable[[Optional[V]], Optional[V]]) -> Optional[V]:
        """
        Atomically replace the value stored under key.

        Args:
            key: Key to update
            fn: Receives the current value (or None) and returns the new value;
                returning None deletes the key

        Returns:
            The value written, or None if the key was deleted
        """
        pass

    @abstractmethod
    def items(self) -> List[Tuple[str, V]]:
        """Snapshot of all entries"""
        pass

    def values(self) -> List[V]:
        return [value for _, value in self.items()]

    def __len__(self) -> int:
        return len(self.items())

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __iter__(self) -> Iterator[str]:
        return iter([key for key, _ in self.items()])


class InMemoryRepository(Repository[V]):
    """Dictionary-backed repository guarded by a re-entrant lock"""

    def __init__(self, initial: Optional[Dict[str, V]] = None):
        self._data: Dict[str, V] = dict(initial or {})
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[V]:
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, value: V) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def update(self, key: str, fn: Callable[[Optional[V]], Optional[V]]) -> Optional[V]:
        with self._lock:
            new_value = fn(self._data.get(key))
            if new_value is None:
                self._data.pop(key, None)
            else:
                self._data[key] = new_value
            return new_value

    def items(self) -> List[Tuple[str, V]]:
        with self._lock:
            return list(self._data.items())

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(size={len(self)})"


def default_repository(repository: Optional[Repository[Any]]) -> Repository[Any]:
    """Return the given repository or a fresh in-memory one"""
    return repository if repository is not None else InMemoryRepository()
