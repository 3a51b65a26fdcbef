"""Local storage services: persisted state, quota, files and archives."""

from app.storage.archiver import Archiver, ZipArchiver
from app.storage.filesystem import FileSystem, LocalFileSystem
from app.storage.kv_store import InMemoryKeyValueStore, JsonFileKeyValueStore, KeyValueStore
from app.storage.quota import QuotaLedger

__all__ = [
    "Archiver",
    "ZipArchiver",
    "FileSystem",
    "LocalFileSystem",
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "QuotaLedger",
]
