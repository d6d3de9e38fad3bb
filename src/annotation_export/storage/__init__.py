"""
Storage gateways for published export archives.
"""

from ..config import STORAGE_PROVIDER
from ..exceptions import InvalidRequestError
from .base import StorageGateway
from .local import LocalStorageGateway


def create_storage_gateway(provider: str = STORAGE_PROVIDER, **kwargs) -> StorageGateway:
    """
    Build the storage gateway named by ``provider``.

    Only ``local`` ships with this package; object-storage backends are
    provided by the host application as StorageGateway implementations.
    """
    if provider == "local":
        return LocalStorageGateway(**kwargs)
    raise InvalidRequestError(f"Unknown storage provider: {provider}. Available: ['local']")


__all__ = ['StorageGateway', 'LocalStorageGateway', 'create_storage_gateway']
