from .archive import ArchiveEngine, ZipArchiveEngine
from .flat import FlatStore
from .hooks import StoreHooks

__all__ = ["ArchiveEngine", "ZipArchiveEngine", "FlatStore", "StoreHooks"]
