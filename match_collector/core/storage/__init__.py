from .storage_engine import StorageEngine

__all__ = ["StorageEngine"]
