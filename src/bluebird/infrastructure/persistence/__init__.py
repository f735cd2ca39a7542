"""Persistence layer."""

from bluebird.infrastructure.persistence.database import Database
from bluebird.infrastructure.persistence.storage_gateway import StorageGateway

__all__ = ["Database", "StorageGateway"]
