from .gateway import NullStorage, StorageGateway
from .settings import StorageSettings

__all__ = [
    "NullStorage",
    "StorageGateway",
    "StorageSettings",
]
