"""
Offline Mode & Sync Engine.
Pushes records created offline to the remote system of record, binds the ids it
hands back, and lets callers that need a remote reference wait a bounded time
for one. The local store stays the source of truth: a failed push only marks the
record, it never removes it.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..core.clock import Clock, system_clock
from ..core.config import settings
from ..core.exceptions import ConflictError, NotFound, SyncRequired
from ..models.record import Collection
from .identity import IdentityMapper, RecordId, identity_mapper
from .local_store import LocalRecordStore, local_store
from .reachability import ReachabilityMonitor, reachability
from .remote_client import PAYLOAD_BUILDERS, RemoteClient, enrich_exercise_names, remote_client

logger = logging.getLogger(__name__)


class SyncOutcome(str, Enum):
    SKIPPED = "skipped"
    COMPLETED = "completed"


class EntityOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclass
class SyncResult:
    outcome: SyncOutcome
    synced: int = 0
    updated: int = 0
    failed: int = 0
    total: int = 0
    errors: List[Dict] = field(default_factory=list)

    @classmethod
    def skipped(cls) -> "SyncResult":
        return cls(outcome=SyncOutcome.SKIPPED)

    def to_dict(self) -> Dict:
        return {
            "outcome": self.outcome.value,
            "synced": self.synced,
            "updated": self.updated,
            "failed": self.failed,
            "total": self.total,
            "errors": list(self.errors),
        }


@dataclass(frozen=True)
class RetryPolicy:
    """How long a caller blocked on a remote id keeps retrying."""
    attempts: int = 3
    initial_delay: float = 1.0
    backoff: float = 2.0
    max_delay: float = 4.0

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            attempts=settings.SYNC_RETRY_ATTEMPTS,
            initial_delay=settings.SYNC_RETRY_INITIAL_DELAY,
            backoff=settings.SYNC_RETRY_BACKOFF,
            max_delay=settings.SYNC_RETRY_MAX_DELAY,
        )

    def wait(self) -> wait_exponential:
        return wait_exponential(
            multiplier=self.initial_delay, exp_base=self.backoff, max=self.max_delay
        )


class Unresolved(Exception):
    """A record still has no database id after one resolve attempt."""
    pass


class SyncEngine:
    """
    Demand-driven sync of local records to the remote backend.

    Runs when the user asks (pull-to-refresh) or when an operation needs a
    remote id that does not exist yet. There is no background timer.
    Independent records are pushed concurrently; each push holds a lock on its
    local id and re-checks the identity mapper first, so overlapping syncs
    never push the same record twice.
    """

    def __init__(
        self,
        store: Optional[LocalRecordStore] = None,
        identity: Optional[IdentityMapper] = None,
        reachability_monitor: Optional[ReachabilityMonitor] = None,
        remote: Optional[RemoteClient] = None,
        clock: Optional[Clock] = None,
        retry_policy: Optional[RetryPolicy] = None,
        max_concurrency: Optional[int] = None,
        collections: Optional[List[str]] = None,
    ):
        self.store = store or local_store
        self.identity = identity or identity_mapper
        self.reachability = reachability_monitor or reachability
        self.remote = remote or remote_client
        self.clock = clock or system_clock
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.max_concurrency = max_concurrency or settings.SYNC_MAX_CONCURRENCY
        self.collections = collections or list(Collection.SYNCABLE)
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def _record_lock(self, local_id: str):
        """Hold the per-record lock; the entry is dropped once nobody holds or awaits it."""
        lock = self._locks.get(local_id)
        if lock is None:
            lock = self._locks[local_id] = asyncio.Lock()
        self._lock_users[local_id] = self._lock_users.get(local_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._lock_users[local_id] - 1
            if remaining:
                self._lock_users[local_id] = remaining
            else:
                del self._lock_users[local_id]
                del self._locks[local_id]

    def _payload_for(self, collection: str, local_id: str, data: Dict) -> Dict:
        if collection == Collection.WORKOUT_SESSIONS:
            names = {
                e.id: e.data.get("name")
                for e in self.store.list(Collection.CUSTOM_EXERCISES)
                if e.data.get("name")
            }
            data = enrich_exercise_names(data, names)
        return PAYLOAD_BUILDERS[collection](local_id, data)

    def pending(self) -> List[tuple]:
        """(collection, local_id) pairs that are unbound or carry unsynced edits."""
        work = []
        for collection in self.collections:
            bound = self.identity.bound_ids(collection)
            for entity in self.store.list(collection):
                if entity.id not in bound or entity.has_unsynced_changes:
                    work.append((collection, entity.id))
        return work

    async def manual_sync(self) -> SyncResult:
        """Push every pending record. Returns immediately when offline."""
        if not await self.reachability.is_online():
            logger.info("Device offline, sync skipped")
            return SyncResult.skipped()

        work = self.pending()
        result = SyncResult(outcome=SyncOutcome.COMPLETED, total=len(work))
        if not work:
            return result

        logger.info("Syncing %d pending records", len(work))
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(collection: str, local_id: str):
            async with semaphore:
                return await self._sync_one(collection, local_id)

        outcomes = await asyncio.gather(*(run(c, i) for c, i in work))

        for (collection, local_id), (outcome, error) in zip(work, outcomes):
            if outcome == EntityOutcome.CREATED:
                result.synced += 1
            elif outcome == EntityOutcome.UPDATED:
                result.updated += 1
            elif outcome == EntityOutcome.FAILED:
                result.failed += 1
                result.errors.append({"collection": collection, "id": local_id, "error": error})

        logger.info(
            "Sync finished: %d created, %d updated, %d failed of %d",
            result.synced, result.updated, result.failed, result.total,
        )
        return result

    async def _sync_one(self, collection: str, local_id: str):
        async with self._record_lock(local_id):
            try:
                entity = self.store.get(collection, local_id)
            except NotFound:
                # Deleted locally since the batch was enumerated
                return EntityOutcome.UNCHANGED, None

            database_id = self.identity.resolve(local_id)
            if database_id is not None and not entity.has_unsynced_changes:
                return EntityOutcome.UNCHANGED, None

            try:
                payload = self._payload_for(collection, local_id, entity.data)
            except ValueError as exc:
                logger.warning("Not pushing %s record %s: %s", collection, local_id, exc)
                self.store.mark_failed(collection, local_id, str(exc))
                return EntityOutcome.FAILED, str(exc)

            self.store.mark_syncing(collection, local_id)
            try:
                if database_id is None:
                    database_id = await self.remote.push(collection, payload, idempotency_key=local_id)
                    outcome = EntityOutcome.CREATED
                else:
                    await self.remote.update(collection, database_id, payload)
                    outcome = EntityOutcome.UPDATED
            except Exception as exc:
                logger.warning("Failed to sync %s record %s: %s", collection, local_id, exc)
                self.store.mark_failed(collection, local_id, str(exc))
                return EntityOutcome.FAILED, str(exc)

            if outcome == EntityOutcome.CREATED:
                try:
                    self.identity.bind(local_id, database_id, collection)
                except ConflictError as exc:
                    logger.error("Identity conflict while syncing %s: %s", collection, exc)
                    self.store.mark_failed(collection, local_id, str(exc))
                    return EntityOutcome.FAILED, str(exc)

            # Edits made while the push was in flight keep version ahead of
            # synced_version and go out as an update on the next pass.
            self.store.mark_synced(collection, local_id, entity.version)
            return outcome, None

    async def ensure_resolved(self, local_id: str, collection: str = Collection.WORKOUT_SESSIONS) -> str:
        """
        Return the database id for ``local_id``, syncing it on demand.

        Retries according to the retry policy and raises SyncRequired if the
        record is still unresolved afterwards. The record stays pending either way.
        """
        self.store.get(collection, local_id)

        policy = self.retry_policy
        retrying = AsyncRetrying(
            stop=stop_after_attempt(policy.attempts),
            wait=policy.wait(),
            retry=retry_if_exception_type(Unresolved),
            sleep=self.clock.sleep,
            before_sleep=before_sleep_log(logger, logging.DEBUG),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._resolve_attempt(
                        collection, local_id, attempt.retry_state.attempt_number
                    )
        except Unresolved:
            logger.warning("Record %s still unresolved after %d attempts", local_id, policy.attempts)
            raise SyncRequired(local_id) from None

    async def _resolve_attempt(self, collection: str, local_id: str, attempt_number: int) -> str:
        database_id = self.identity.resolve(local_id)
        if database_id is not None:
            return database_id

        if attempt_number > 1:
            # The cached state may predate the last backoff sleep
            self.reachability.invalidate()
        if await self.reachability.is_online():
            await self._sync_one(collection, local_id)
            database_id = self.identity.resolve(local_id)
        if database_id is None:
            raise Unresolved(local_id)
        return database_id

    async def resolve_reference(
        self, record_id: RecordId, collection: str = Collection.WORKOUT_SESSIONS
    ) -> RecordId:
        """Turn any RecordId into a REMOTE one, syncing a local record if needed."""
        if not record_id.is_local:
            return record_id
        return RecordId.remote(await self.ensure_resolved(record_id.value, collection))

    async def pull_calendar(self, user_id: str) -> int:
        """Backfill calendar markers from the user's remote session history."""
        if not await self.reachability.is_online():
            return 0
        try:
            sessions = await self.remote.list_sessions(user_id)
        except Exception as exc:
            logger.warning("Could not fetch remote sessions for %s: %s", user_id, exc)
            return 0
        return self.store.backfill_calendar(user_id, sessions, self.clock.today())

    async def sync_status(self) -> Dict:
        return {
            "pending_count": len(self.pending()),
            "online": await self.reachability.is_online(),
        }


sync_engine = SyncEngine()
