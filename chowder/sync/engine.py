"""Dirty-tracking reconciliation with the remote authority.

A pass snapshots the dirty records, type by type in a fixed order, then
re-reads and pushes each one that is still pending: records without an
external id are created remotely and adopt the id the server returns, the
rest are updated in place. A record is marked synced only after the server
acknowledged it, so a failure leaves it dirty for the next pass and never
blocks the records after it.

Passes never overlap. They run on a timer, once at startup, on demand, and
whenever connectivity comes back.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from chowder.core import clock
from chowder.core.errors import ApiError, SyncItemFailed
from chowder.storage.repository import Repository, RepositoryManager

from .api import ApiClient
from .connectivity import ConnectivityState
from .session import Session

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 30.0

SKIP_IN_PROGRESS = "in_progress"
SKIP_NOT_AUTHENTICATED = "not_authenticated"
SKIP_OFFLINE = "offline"


@dataclass(frozen=True)
class RemoteResource:
    """Where and how one entity type is pushed."""

    entity: str
    create_method: str
    create_path: str
    update_path: str
    fields: tuple[str, ...]

    def path_for(self, external_id: str) -> str:
        return self.update_path.format(external_id=external_id)


RESOURCES: dict[str, RemoteResource] = {
    resource.entity: resource
    for resource in (
        RemoteResource(
            "Author",
            "PUT",
            "/api/user/profile",
            "/api/user/profile",
            ("displayName", "avatarUri", "email"),
        ),
        RemoteResource(
            "Place",
            "POST",
            "/api/places",
            "/api/places/{external_id}",
            (
                "name",
                "address",
                "latitude",
                "longitude",
                "categoryId",
                "notes",
                "overallRatingManual",
                "ratingMode",
                "coverImageUri",
            ),
        ),
        RemoteResource(
            "List",
            "POST",
            "/api/lists",
            "/api/lists/{external_id}",
            ("name", "description", "category", "city"),
        ),
        RemoteResource(
            "Visit",
            "POST",
            "/api/visits",
            "/api/visits/{external_id}",
            ("placeId", "notes", "photoUri"),
        ),
        RemoteResource(
            "Dish",
            "POST",
            "/api/dishes",
            "/api/dishes/{external_id}",
            ("visitId", "name", "categoryId", "rating", "notes", "photoUri"),
        ),
        RemoteResource(
            "Category",
            "POST",
            "/api/categories",
            "/api/categories/{external_id}",
            ("name", "type", "parentId", "order"),
        ),
        RemoteResource(
            "Tag",
            "POST",
            "/api/tags",
            "/api/tags/{external_id}",
            ("name", "color"),
        ),
    )
}


@dataclass
class SyncReport:
    """Outcome of one sync pass."""

    started_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None
    pushed: int = 0
    failed: int = 0
    counts: dict[str, int] = field(default_factory=dict)
    errors: list[SyncItemFailed] = field(default_factory=list)
    skipped: str | None = None

    @property
    def duration(self) -> float | None:
        """Get pass duration in seconds."""
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def ok(self) -> bool:
        return self.skipped is None and not self.failed

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat()
            if self.completed_at
            else None,
            "duration": self.duration,
            "pushed": self.pushed,
            "failed": self.failed,
            "counts": self.counts,
            "errors": [str(e) for e in self.errors],
            "skipped": self.skipped,
        }


class SyncEngine:
    """Pushes dirty local records to the remote API."""

    def __init__(
        self,
        manager: RepositoryManager,
        api: ApiClient,
        session: Session,
        connectivity: ConnectivityState,
        interval: float = DEFAULT_INTERVAL,
    ):
        self.manager = manager
        self.api = api
        self.session = session
        self.connectivity = connectivity
        self.interval = interval
        self.last_report: SyncReport | None = None

        self._syncing = False
        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._pending: set[asyncio.Task] = set()

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    @property
    def is_running(self) -> bool:
        return self._task is not None

    async def run_pass(self) -> SyncReport:
        """Push every record that is dirty when the pass starts."""
        if self._syncing:
            logger.debug("Sync already in progress, skipping")
            return self._skipped(SKIP_IN_PROGRESS)
        if not self.session.is_authenticated():
            logger.debug("Not authenticated, skipping sync")
            return self._skipped(SKIP_NOT_AUTHENTICATED)
        if not self.connectivity.is_online():
            logger.debug("Device is offline, skipping sync")
            return self._skipped(SKIP_OFFLINE)

        self._syncing = True
        report = SyncReport()
        logger.info("Starting sync pass")

        try:
            snapshot = [
                (repository, await repository.list_dirty())
                for repository in self.manager.repositories()
            ]

            for repository, records in snapshot:
                resource = RESOURCES[repository.entity]
                for record in records:
                    try:
                        pushed = await self._push(repository, resource, record.id)
                    except Exception as e:
                        failure = SyncItemFailed(resource.entity, record.id, e)
                        logger.warning(str(failure))
                        report.errors.append(failure)
                        report.failed += 1
                        continue
                    if not pushed:
                        continue
                    report.pushed += 1
                    report.counts[resource.entity] = (
                        report.counts.get(resource.entity, 0) + 1
                    )
        finally:
            self._syncing = False

        report.completed_at = datetime.now()
        self.last_report = report
        logger.info(
            f"Sync pass finished: {report.pushed} pushed, {report.failed} failed"
        )
        return report

    async def trigger(self) -> SyncReport:
        """Run a pass now."""
        return await self.run_pass()

    async def start(self) -> None:
        """Run one pass immediately, then one every ``interval`` seconds."""
        if self._task is not None:
            logger.debug("Sync service already running")
            return

        logger.info("Starting sync service")
        self._loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        self.connectivity.add_listener(self._on_connectivity_change)
        self._task = asyncio.create_task(self._run_periodic(self._stop_event))

    async def stop(self) -> None:
        """Stop the timer; a pass already in flight is allowed to finish."""
        self.connectivity.remove_listener(self._on_connectivity_change)
        task, self._task = self._task, None
        if task is None:
            return

        if self._stop_event is not None:
            self._stop_event.set()
        await task
        if self._pending:
            await asyncio.gather(*self._pending)
        logger.info("Sync service stopped")

    async def _run_periodic(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await self.run_pass()
            except Exception as e:
                logger.error(f"Sync pass failed: {e}")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

    def _on_connectivity_change(self, online: bool) -> None:
        if not online or self._loop is None or self._task is None:
            return
        logger.info("Device came online, triggering sync")
        self._loop.call_soon_threadsafe(self._schedule_pass)

    def _schedule_pass(self) -> None:
        task = asyncio.ensure_future(self.run_pass())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _push(
        self, repository: Repository, resource: RemoteResource, record_id: str
    ) -> bool:
        """Send the current local copy; False if it was deleted or is now clean."""
        record = await repository.find(record_id)
        if record is None or not record.dirty:
            logger.debug(f"{resource.entity} {record_id} no longer pending, skipping")
            return False

        data = record.to_record()
        payload = {name: data[name] for name in resource.fields}

        if record.external_id is None:
            response = await self.api.request(
                resource.create_method, resource.create_path, payload
            )
            external_id = _response_id(response)
        else:
            await self.api.put(resource.path_for(record.external_id), payload)
            external_id = record.external_id

        await repository.mark_synced(record.id, external_id, clock.now_ms())
        return True

    def _skipped(self, reason: str) -> SyncReport:
        report = SyncReport(skipped=reason)
        report.completed_at = report.started_at
        return report


def _response_id(response: Any) -> str:
    if isinstance(response, dict) and response.get("id") is not None:
        return str(response["id"])
    raise ApiError("Response did not include an id")
