from typing import BinaryIO, Optional


class StorageProvider:
    def save(self, stream: BinaryIO, key: str) -> int:
        """Write stream under key and return the number of bytes stored."""
        raise NotImplementedError

    def get_url(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError
