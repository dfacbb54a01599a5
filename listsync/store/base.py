"""Base class for durable entry stores."""

from abc import ABC, abstractmethod


class EntryStore(ABC):
    """Abstract durable mirror of a client's ordered entry list.

    Implementations are assumed synchronous and reliable.
    """

    @abstractmethod
    def load(self) -> list[str]:
        """Return the persisted entries in order (empty if none)."""
        pass

    @abstractmethod
    def save(self, entries: list[str]) -> None:
        """Replace the persisted entries with the given ordered list."""
        pass
