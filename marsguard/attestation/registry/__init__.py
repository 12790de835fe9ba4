from .filesystem import FilesystemRegistry
from .http_client import HTTPNullifierRegistry
from .interface import NullifierRegistry
from .memory import InMemoryRegistry

__all__ = [
    "FilesystemRegistry",
    "HTTPNullifierRegistry",
    "InMemoryRegistry",
    "NullifierRegistry",
]
