"""Memory domain — per-wallet aggregate, commit scheduling and pointer cache.

Exports are loaded lazily so that ``intentvault.blobstore`` can import the
snapshot schemas without pulling in the manager (which imports it back).
"""

from __future__ import annotations

from importlib import import_module

__all__ = [
    "ActivityLogEntry",
    "ChatMessage",
    "CommitKind",
    "CommitScheduler",
    "Contact",
    "ContactError",
    "InMemoryPointerCache",
    "LoggingNotifier",
    "MemoryAggregate",
    "MemoryManager",
    "MemoryNotReadyError",
    "MemoryState",
    "Notifier",
    "PointerCache",
    "RedisPointerCache",
    "SnapshotStore",
]


_EXPORT_TO_MODULE = {
    "ActivityLogEntry": "intentvault.memory.schemas",
    "ChatMessage": "intentvault.memory.schemas",
    "Contact": "intentvault.memory.schemas",
    "MemoryAggregate": "intentvault.memory.schemas",
    "CommitKind": "intentvault.memory.scheduler",
    "CommitScheduler": "intentvault.memory.scheduler",
    "InMemoryPointerCache": "intentvault.memory.pointer_cache",
    "PointerCache": "intentvault.memory.pointer_cache",
    "RedisPointerCache": "intentvault.memory.pointer_cache",
    "ContactError": "intentvault.memory.manager",
    "LoggingNotifier": "intentvault.memory.manager",
    "MemoryManager": "intentvault.memory.manager",
    "MemoryNotReadyError": "intentvault.memory.manager",
    "MemoryState": "intentvault.memory.manager",
    "Notifier": "intentvault.memory.manager",
    "SnapshotStore": "intentvault.memory.manager",
}


def __getattr__(name: str):
    module_name = _EXPORT_TO_MODULE.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module = import_module(module_name)
    return getattr(module, name)
