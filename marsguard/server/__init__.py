from .http_server import RegistryHTTPServer

__all__ = ["RegistryHTTPServer"]
