"""Offline queue of partner check-in/check-out actions and its reconciliation with the server."""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Union

from booking_api.domain import is_terminal

from .api import BookingApiClient
from .errors import TerminalRejection, TransientSyncError
from .store import ActionKind, LocalStore, PendingAction, utcnow

if TYPE_CHECKING:
    from .connectivity import ConnectivityMonitor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncConflict:
    """An action the server refused for good; it has been removed from the queue."""

    action_id: str
    booking_id: str
    action: ActionKind
    reason: str
    code: Optional[str] = None
    server_status: Optional[str] = None

    @property
    def message(self) -> str:
        verb = "check in" if self.action is ActionKind.CHECK_IN else "check out"
        if self.server_status:
            return f"Could not {verb} booking {self.booking_id}: it is already {self.server_status}"
        return f"Could not {verb} booking {self.booking_id}: {self.reason}"


@dataclass
class SyncReport:
    """What one sync pass did."""

    skipped: bool = False
    offline: bool = False
    synced: list[str] = field(default_factory=list)
    conflicts: list[SyncConflict] = field(default_factory=list)
    retried: list[str] = field(default_factory=list)
    held_back: list[str] = field(default_factory=list)
    pruned: int = 0

    @property
    def attempted(self) -> int:
        return len(self.synced) + len(self.conflicts) + len(self.retried)


ConflictListener = Callable[[SyncConflict], Union[None, Awaitable[None]]]


def pending_status_for(actions: list[PendingAction]) -> Optional[str]:
    """Optimistic status implied by a booking's unsynced actions, newest wins."""
    if not actions:
        return None
    return actions[-1].kind.target_status


def is_authoritative_conflict(cached_status: Optional[str]) -> bool:
    """A cached terminal status means no queued action can still apply."""
    return cached_status is not None and is_terminal(cached_status)


class OfflineActionQueue:
    """
    Durable queue of staff actions taken while the device may be offline.

    Actions are stored before anything else happens and are only removed once
    the server has applied them or refused them for good. One sync pass runs
    at a time; a pass requested while another is running is skipped.
    """

    def __init__(
        self,
        store: LocalStore,
        api: BookingApiClient,
        monitor: "ConnectivityMonitor",
        on_conflict: Optional[ConflictListener] = None,
        synced_retention_hours: float = 24.0,
    ):
        self.store = store
        self.api = api
        self.monitor = monitor
        self.on_conflict = on_conflict
        self.synced_retention = timedelta(hours=synced_retention_hours)
        self._lock = asyncio.Lock()

    @property
    def syncing(self) -> bool:
        return self._lock.locked()

    async def recover(self) -> int:
        """Release actions a crashed process left marked as in flight."""
        released = await self.store.clear_in_flight()
        if released:
            logger.warning("Released stale in-flight actions", extra={"count": released})
        return released

    async def queue_action(self, booking_id: str, kind: Union[ActionKind, str]) -> PendingAction:
        """
        Record an action locally.

        Never touches the network. The cached booking shows the action's target
        status until the server answers.
        """
        kind = ActionKind(kind)
        action = await self.store.add_action(str(booking_id), kind)
        await self.store.set_pending_status(action.booking_id, kind.target_status)

        logger.info(
            "Action queued",
            extra={"action_id": action.id, "booking_id": action.booking_id, "action": kind.value}
        )
        return action

    async def pending(self) -> list[PendingAction]:
        """Unsynced actions, oldest first."""
        return await self.store.unsynced_actions()

    async def cancel_action(self, action_id: str) -> bool:
        """
        Drop an action that has not been submitted.

        Returns:
            False when the action is unknown, already synced, or being submitted
        """
        action = await self.store.get_action(action_id)
        if action is None:
            return False

        if not await self.store.delete_local_action(action_id):
            return False

        await self._refresh_pending_status(action.booking_id)
        logger.info("Queued action cancelled", extra={"action_id": action_id, "booking_id": action.booking_id})
        return True

    async def sync(self, now: Optional[datetime] = None) -> SyncReport:
        """Submit unsynced actions to the server, oldest first."""
        if not self.monitor.online:
            return SyncReport(offline=True)
        if self._lock.locked():
            logger.debug("Sync already running, skipping")
            return SyncReport(skipped=True)

        async with self._lock:
            report = await self._sync_pass()
            report.pruned = await self.store.prune_synced((now or utcnow()) - self.synced_retention)

        logger.info(
            "Sync pass finished",
            extra={
                "synced": len(report.synced),
                "conflicts": len(report.conflicts),
                "retried": len(report.retried),
                "held_back": len(report.held_back),
                "pruned": report.pruned,
            }
        )
        return report

    async def _sync_pass(self) -> SyncReport:
        report = SyncReport()
        # Bookings whose earlier action did not go through in this pass
        blocked: set[str] = set()

        for action in await self.store.unsynced_actions():
            if not self.monitor.online:
                report.held_back.append(action.id)
                continue

            if action.booking_id in blocked or action.in_flight:
                report.held_back.append(action.id)
                blocked.add(action.booking_id)
                continue

            cached = await self.store.get_booking(action.booking_id)
            if cached is not None and is_authoritative_conflict(cached.status):
                if await self._already_applied(action, cached.status):
                    await self.store.mark_synced(action.id)
                    await self._refresh_pending_status(action.booking_id)
                    report.synced.append(action.id)
                    logger.info(
                        "Action already applied on the server",
                        extra={"action_id": action.id, "booking_id": action.booking_id, "status": cached.status}
                    )
                    continue

                await self.store.delete_action(action.id)
                await self._refresh_pending_status(action.booking_id)
                await self._conflict(
                    report,
                    SyncConflict(
                        action_id=action.id,
                        booking_id=action.booking_id,
                        action=action.kind,
                        reason="Booking is already in a final state",
                        server_status=cached.status,
                    ),
                )
                blocked.add(action.booking_id)
                continue

            if not await self.store.claim_action(action.id):
                report.held_back.append(action.id)
                blocked.add(action.booking_id)
                continue

            outcome = await self._submit(action, report)
            if not outcome:
                blocked.add(action.booking_id)

        return report

    async def _submit(self, action: PendingAction, report: SyncReport) -> bool:
        try:
            snapshot = await self.api.submit(action.kind, action.booking_id, idempotency_key=action.id)
        except TransientSyncError as e:
            await self.store.mark_failed(action.id, str(e))
            report.retried.append(action.id)
            logger.warning(
                "Action left queued after transient failure",
                extra={
                    "action_id": action.id,
                    "booking_id": action.booking_id,
                    "retry_count": action.retry_count + 1,
                    "error": str(e),
                }
            )
            return False
        except TerminalRejection as e:
            await self.store.delete_action(action.id)
            await self._refresh_pending_status(action.booking_id)
            await self._conflict(
                report,
                SyncConflict(
                    action_id=action.id,
                    booking_id=action.booking_id,
                    action=action.kind,
                    reason=e.detail,
                    code=e.code,
                    server_status=e.current_status,
                ),
            )
            return False
        except Exception:
            await self.store.release_action(action.id)
            raise

        await self.store.mark_synced(action.id)
        remaining = await self.store.unsynced_actions(action.booking_id)
        await self.store.upsert_booking(snapshot, pending_status=pending_status_for(remaining))
        report.synced.append(action.id)

        logger.info(
            "Action synced",
            extra={"action_id": action.id, "booking_id": action.booking_id, "status": snapshot.get("status")}
        )
        return True

    async def _already_applied(self, action: PendingAction, server_status: str) -> bool:
        """
        True when the server status is the one this action, or a later queued
        action for the same booking, leads to.

        Happens when the server applied a submission but the acknowledgement
        was lost and a cache refresh saw the result first.
        """
        queued = await self.store.unsynced_actions(action.booking_id)
        ids = [a.id for a in queued]
        later = queued[ids.index(action.id):] if action.id in ids else [action]
        return any(a.kind.target_status == server_status for a in later)

    async def _refresh_pending_status(self, booking_id: str) -> None:
        remaining = await self.store.unsynced_actions(booking_id)
        await self.store.set_pending_status(booking_id, pending_status_for(remaining))

    async def _conflict(self, report: SyncReport, conflict: SyncConflict) -> None:
        report.conflicts.append(conflict)
        logger.warning(
            "Action discarded after terminal rejection",
            extra={
                "action_id": conflict.action_id,
                "booking_id": conflict.booking_id,
                "code": conflict.code,
                "server_status": conflict.server_status,
            }
        )
        if self.on_conflict is None:
            return

        try:
            result: Any = self.on_conflict(conflict)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(
                "Conflict listener failed",
                extra={"action_id": conflict.action_id, "error": str(e)},
                exc_info=True,
            )
