"""Persistent memory manager.

Owns the in-memory aggregate of the connected wallet, applies mutations
synchronously and commits snapshots to the blob store in the background.

Lifecycle: ``UNLOADED -> LOADING -> READY``. While READY, a mutation arms
either the fast-path timer (aggregate never committed) or the debounce
timer; when a timer elapses the aggregate is snapshotted *at that moment*
and committed. At most one commit runs at a time per manager, manual saves
included. Repeated failures open a backoff window during which background
commits are skipped; mutations keep applying locally regardless.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from collections.abc import Coroutine
from collections.abc import Iterable
from enum import Enum
from time import perf_counter
from typing import Any
from typing import Protocol

from intentvault.blobstore import BlobStoreError
from intentvault.config import MemoryConfig
from intentvault.memory.pointer_cache import PointerCache
from intentvault.memory.scheduler import CommitKind
from intentvault.memory.scheduler import CommitScheduler
from intentvault.memory.schemas import ActivityLogEntry
from intentvault.memory.schemas import ChatMessage
from intentvault.memory.schemas import Contact
from intentvault.memory.schemas import MemoryAggregate
from intentvault.memory.schemas import now_ms
from intentvault.observability import record_event
from intentvault.observability import record_latency

logger = logging.getLogger(__name__)

ADDRESS_PREFIX = "0x"


class MemoryState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"


class MemoryNotReadyError(RuntimeError):
    """A mutation was attempted before an identity finished loading."""


class ContactError(ValueError):
    """An address-book change violated a contact invariant."""


class SnapshotStore(Protocol):
    """What the manager needs from the blob gateway."""

    async def put(self, aggregate: MemoryAggregate, epochs: int | None = None) -> str: ...

    async def get(self, pointer: str) -> MemoryAggregate | None: ...


class Notifier(Protocol):
    """User-visible notices. Only manual saves ever reach it."""

    def notify_error(self, message: str) -> object: ...

    def notify_success(self, message: str) -> object: ...

    def dismiss(self, handle: object) -> None: ...


class LoggingNotifier:
    """Notifier that writes notices to the log."""

    def __init__(self) -> None:
        self._counter = 0

    def notify_error(self, message: str) -> object:
        self._counter += 1
        logger.error("notice #%d: %s", self._counter, message)
        return self._counter

    def notify_success(self, message: str) -> object:
        self._counter += 1
        logger.info("notice #%d: %s", self._counter, message)
        return self._counter

    def dismiss(self, handle: object) -> None:
        logger.debug("notice #%s dismissed", handle)


SAVE_FAILED_NOTICE = "Could not save memory to the blob store"
SAVE_OK_NOTICE = "Memory saved to the blob store"
NOTHING_TO_SAVE_NOTICE = "No data to save"


class MemoryManager:
    """Single owner of one wallet's aggregate and its commit schedule."""

    def __init__(
        self,
        store: SnapshotStore,
        pointer_cache: PointerCache,
        *,
        config: MemoryConfig | None = None,
        notifier: Notifier | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._pointer_cache = pointer_cache
        self._config = config or MemoryConfig()
        self._notifier = notifier or LoggingNotifier()
        self._clock = clock

        self._scheduler = CommitScheduler(self._config)
        self._state = MemoryState.UNLOADED
        self._aggregate: MemoryAggregate | None = None
        self._commit_lock = asyncio.Lock()
        self._timers: dict[CommitKind, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()
        self._generation = 0
        self._saving = False
        self._last_notice: object | None = None
        self.last_error: str | None = None

    # -- introspection --

    @property
    def state(self) -> MemoryState:
        return self._state

    @property
    def aggregate(self) -> MemoryAggregate | None:
        return self._aggregate

    @property
    def is_saving(self) -> bool:
        return self._saving

    @property
    def backoff_active(self) -> bool:
        return self._scheduler.in_backoff(self._clock())

    @property
    def consecutive_failures(self) -> int:
        return self._scheduler.consecutive_failures

    @property
    def has_pending_changes(self) -> bool:
        return self._scheduler.pending

    # -- identity --

    async def switch_identity(self, wallet_address: str | None) -> MemoryAggregate | None:
        """Discard the current aggregate and load the one for *wallet_address*.

        ``None`` disconnects. The remote snapshot of the previous identity
        is left untouched.
        """
        self._cancel_scheduled_work()
        self._scheduler.reset()
        self._generation += 1
        generation = self._generation
        self._last_notice = None
        self.last_error = None
        self._aggregate = None

        if not wallet_address:
            self._state = MemoryState.UNLOADED
            return None

        self._state = MemoryState.LOADING
        aggregate = await self._load(wallet_address)
        if generation != self._generation:
            # Another switch started while this one was loading
            return self._aggregate

        self._aggregate = aggregate
        self._state = MemoryState.READY
        return aggregate

    async def _load(self, wallet_address: str) -> MemoryAggregate:
        try:
            pointer = await self._pointer_cache.get(wallet_address)
        except Exception:
            logger.exception("Pointer cache lookup failed for %s", wallet_address)
            pointer = None

        if pointer:
            try:
                snapshot = await self._store.get(pointer)
            except BlobStoreError as exc:
                logger.warning("Could not fetch snapshot %s: %s", pointer, exc)
                snapshot = None
            if snapshot is not None and snapshot.wallet_address == wallet_address:
                logger.info("Loaded memory for %s from %s", wallet_address, pointer)
                return snapshot.model_copy(update={"pointer": pointer})
            if snapshot is not None:
                logger.warning(
                    "Snapshot %s belongs to %s, not %s; starting fresh",
                    pointer,
                    snapshot.wallet_address,
                    wallet_address,
                )

        logger.info("Creating new memory for %s", wallet_address)
        return MemoryAggregate.empty(wallet_address)

    # -- mutations --

    def _require_ready(self) -> MemoryAggregate:
        if self._state is not MemoryState.READY or self._aggregate is None:
            raise MemoryNotReadyError(
                f"memory is {self._state.value}; connect an identity first"
            )
        return self._aggregate

    def append_chat_message(self, message: ChatMessage) -> None:
        self._require_ready().chat_history.append(message)
        self._schedule_commit()

    def append_activity_log(self, entry: ActivityLogEntry) -> None:
        self._require_ready().activity_logs.append(entry)
        self._schedule_commit()

    def set_summary(self, summary: str) -> None:
        self._require_ready().ai_summary = summary
        self._schedule_commit()

    def set_contacts(self, contacts: Iterable[Contact]) -> None:
        """Replace the address book. Names must be unique, ignoring case."""
        aggregate = self._require_ready()
        new_contacts = list(contacts)
        seen: set[str] = set()
        for contact in new_contacts:
            key = contact.name.lower()
            if key in seen:
                raise ContactError(f"duplicate contact name: {contact.name}")
            seen.add(key)
        aggregate.contacts = new_contacts
        self._schedule_commit()

    def add_contact(self, name: str, address: str) -> Contact:
        """Add one address-book entry after validating it."""
        aggregate = self._require_ready()
        name = name.strip()
        address = address.strip()
        if not name or not address:
            raise ContactError("both name and address are required")
        if not address.startswith(ADDRESS_PREFIX):
            raise ContactError(f"invalid address, must start with {ADDRESS_PREFIX}")
        if any(c.name.lower() == name.lower() for c in aggregate.contacts):
            raise ContactError(f"a contact named {name!r} already exists")
        if any(c.address.lower() == address.lower() for c in aggregate.contacts):
            raise ContactError("this address is already in the address book")
        contact = Contact(name=name, address=address)
        self.set_contacts([*aggregate.contacts, contact])
        return contact

    def remove_contact(self, name: str) -> bool:
        """Drop the entry named ``name``, ignoring case as ``add_contact`` does."""
        aggregate = self._require_ready()
        key = name.strip().lower()
        remaining = [c for c in aggregate.contacts if c.name.lower() != key]
        if len(remaining) == len(aggregate.contacts):
            return False
        self.set_contacts(remaining)
        return True

    def clear(self) -> None:
        """Replace the aggregate with a fresh empty one and commit it."""
        aggregate = self._require_ready()
        self._cancel_timers()
        self._aggregate = MemoryAggregate.empty(aggregate.wallet_address)
        self._scheduler.rearm_fast_path()
        self._schedule_commit()

    # -- commits --

    async def save_now(self) -> bool:
        """Commit immediately on explicit user request.

        Bypasses the backoff window. Failures are surfaced through the
        notifier, throttled.
        """
        if self._state is not MemoryState.READY or self._aggregate is None:
            self._notifier.notify_error(NOTHING_TO_SAVE_NOTICE)
            return False
        self._cancel_timers()
        ok = await self._commit(manual=True)
        if ok:
            self._notifier.notify_success(SAVE_OK_NOTICE)
        return ok

    async def flush(self) -> bool:
        """Commit pending changes now under background rules (silent, backoff honoured)."""
        self._cancel_timers()
        return await self._commit(manual=False)

    def _schedule_commit(self) -> None:
        assert self._aggregate is not None
        kind, delay = self._scheduler.on_mutation(
            self._clock(), has_pointer=self._aggregate.pointer is not None
        )
        existing = self._timers.pop(kind, None)
        if existing is not None:
            existing.cancel()
        loop = asyncio.get_running_loop()
        self._timers[kind] = loop.call_later(
            delay, self._on_timer, kind, self._generation
        )

    def _on_timer(self, kind: CommitKind, generation: int) -> None:
        self._timers.pop(kind, None)
        if generation != self._generation:
            return
        self._spawn(self._commit(manual=False))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _commit(self, *, manual: bool) -> bool:
        async with self._commit_lock:
            aggregate = self._aggregate
            if self._state is not MemoryState.READY or aggregate is None:
                return False

            now = self._clock()
            if not manual:
                if not self._scheduler.pending:
                    return True
                if self._scheduler.in_backoff(now):
                    logger.info(
                        "In backoff, skipping commit; resumes in %.0fs",
                        self._scheduler.backoff_remaining(now),
                    )
                    record_event("memory.commit.skipped")
                    return False

            generation = self._generation
            snapshot = aggregate.model_copy(
                deep=True, update={"last_updated": now_ms()}
            )
            self._scheduler.begin_attempt()
            self._saving = True
            start = perf_counter()
            error: BlobStoreError | None = None
            pointer: str | None = None
            try:
                pointer = await self._store.put(snapshot)
            except BlobStoreError as exc:
                error = exc
            finally:
                self._saving = False
                record_latency(
                    operation="memory.commit",
                    duration_ms=(perf_counter() - start) * 1000,
                    error=None if error is None else str(error),
                )

            if generation != self._generation:
                return False
            if error is not None or pointer is None:
                self._on_commit_failure(error, manual=manual)
                return False

            self._scheduler.record_success()
            self.last_error = None
            if aggregate is not self._aggregate:
                # Cleared while in flight; the fresh aggregate commits on its own
                return True
            aggregate.pointer = pointer
            aggregate.last_updated = snapshot.last_updated
            try:
                await self._pointer_cache.set(aggregate.wallet_address, pointer)
            except Exception:
                logger.exception("Could not cache pointer for %s", aggregate.wallet_address)
            logger.info(
                "Committed memory for %s (%s) at %s",
                aggregate.wallet_address,
                "manual" if manual else "background",
                pointer,
            )
            return True

    def _on_commit_failure(self, error: BlobStoreError | None, *, manual: bool) -> None:
        now = self._clock()
        opened = self._scheduler.record_failure(now)
        self.last_error = str(error) if error else "store returned no pointer"
        logger.warning(
            "Commit failed (%d consecutive): %s",
            self._scheduler.consecutive_failures,
            self.last_error,
        )
        if opened:
            logger.warning(
                "Entering backoff for %.0fs after %d consecutive failures",
                self._config.backoff_seconds,
                self._scheduler.consecutive_failures,
            )
        if not manual:
            return
        if not self._scheduler.may_notify(now):
            logger.debug("Failure notice throttled")
            return
        if self._last_notice is not None:
            self._notifier.dismiss(self._last_notice)
        self._last_notice = self._notifier.notify_error(SAVE_FAILED_NOTICE)

    # -- teardown --

    def _cancel_timers(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()

    def _cancel_scheduled_work(self) -> None:
        self._cancel_timers()
        for task in list(self._tasks):
            task.cancel()

    async def aclose(self) -> None:
        """Cancel timers and background commits; the manager is unusable afterwards."""
        self._cancel_scheduled_work()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._aggregate = None
        self._state = MemoryState.UNLOADED
