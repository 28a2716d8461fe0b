import base64
import binascii
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass

_DATA_URL = re.compile(r"^data:(?P<content_type>[\w.+-]+/[\w.+-]+);base64,(?P<payload>.+)$", re.S)


class BlobStoreError(Exception):
    """Upload rejected by, or unreachable at, the blob store."""


@dataclass(frozen=True)
class ImageUpload:
    data: bytes
    content_type: str

    @classmethod
    def from_data_url(cls, value: str) -> "ImageUpload":
        """Decode a ``data:<type>;base64,<payload>`` URL as sent by browsers."""
        match = _DATA_URL.match(value.strip())
        if match is None:
            raise ValueError("Not a base64 data URL")
        try:
            data = base64.b64decode(match.group("payload"), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("Malformed base64 payload") from exc
        return cls(data=data, content_type=match.group("content_type"))

    @staticmethod
    def is_data_url(value: str) -> bool:
        return value.strip().startswith("data:")


class BlobStore(ABC):
    """Port for image storage. Returns a publicly reachable URL."""

    @abstractmethod
    async def put(self, data: bytes, content_type: str) -> str:
        """Raises BlobStoreError on failure."""
        ...
