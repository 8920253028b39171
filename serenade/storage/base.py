from abc import ABC, abstractmethod


class StorageError(Exception):
    pass


class Storage(ABC):
    @abstractmethod
    def upload(self, path: str, content: bytes, content_type: str = "audio/mpeg") -> str:
        """Write content at path (overwriting); returns the stored path."""
        raise NotImplementedError

    @abstractmethod
    def read(self, path: str) -> bytes:
        raise NotImplementedError

    @abstractmethod
    def exists(self, path: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def signed_url(self, path: str, expires_in: int | None = None) -> str:
        """Time-limited read URL for path."""
        raise NotImplementedError
