"""Seat reservation coordinator.

Arbitrates concurrent hold, release and commit calls for the seats of a
schedule. Per seat the state machine is::

    available -> held -> available     (release, expiry, superseded)
    held -> booked                     (commit)
    booked -> available                (booking cancellation)

All mutations of one schedule's holds run under that schedule's lock. Within
a process the lock is an ``asyncio.Lock``; across processes PostgreSQL's
transaction-scoped advisory lock and the unique constraints on ``hold_seats``
and ``booking_seats`` keep the stored state consistent.
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import AsyncIterator
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, utcnow
from ..core.config import settings
from ..core.exceptions import (
    HoldExpiredError,
    InvalidSeatRequestError,
    NotHeldError,
    PaymentNotConfirmedError,
    PersistenceFailureError,
    ProblemDetailsException,
    ScheduleBusyError,
    SeatsUnavailableError,
)
from ..core.observability import metrics_collector
from ..models.booking import Booking
from ..models.hold import Hold, HoldSeat
from ..models.schedule import Schedule
from ..schemas.booking import PassengerDetails
from ..schemas.events import SeatsBeingLocked, SeatsBooked, SeatsLocked, SeatsUnlocked, UnlockReason
from .booking_service import BookingDraft, BookingService
from .payment_gateway import PaymentConfirmation
from .schedule_service import ScheduleService
from .seat_events import SeatEventBroadcaster, seat_events

logger = logging.getLogger(__name__)


class ScheduleLockRegistry:
    """In-process mutual exclusion per schedule with a bounded wait."""

    def __init__(self, timeout_seconds: float | None = None):
        if timeout_seconds is None:
            timeout_seconds = settings.schedule_lock_timeout_seconds
        self.timeout_seconds = timeout_seconds
        self._locks: dict[UUID, asyncio.Lock] = {}

    def get(self, schedule_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(schedule_id)
        if lock is None:
            lock = self._locks[schedule_id] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def locked(self, schedule_id: UUID) -> AsyncIterator[None]:
        """
        Hold the schedule's lock for the duration of the block.

        Raises:
            ScheduleBusyError: If the lock is not acquired within the timeout
        """
        lock = self.get(schedule_id)
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "Timed out waiting for schedule lock",
                extra={"schedule_id": str(schedule_id), "timeout_seconds": self.timeout_seconds}
            )
            raise ScheduleBusyError(str(schedule_id), self.timeout_seconds) from None
        try:
            yield
        finally:
            lock.release()


# Process-wide registry shared by API requests and the expiry worker
schedule_locks = ScheduleLockRegistry()


@dataclass(frozen=True)
class ExpiredHold:
    hold_id: UUID
    session_id: str
    seat_ids: list[UUID]
    removed_at: datetime


def _ids(values: Iterable[UUID]) -> list[str]:
    return [str(value) for value in values]


class SeatReservationCoordinator:
    """
    Owns seat holds and turns paid holds into bookings.

    Errors are raised to the caller as Problem Details exceptions. Events are
    published once the schedule lock is released; delivery failures never
    propagate and never undo a committed change.
    """

    def __init__(
        self,
        db: AsyncSession,
        events: SeatEventBroadcaster | None = None,
        locks: ScheduleLockRegistry | None = None,
        clock: Clock = utcnow,
        hold_window_seconds: int | None = None,
        max_seats_per_hold: int | None = None,
    ):
        self.db = db
        self.events = events if events is not None else seat_events
        self.locks = locks if locks is not None else schedule_locks
        self.clock = clock
        if hold_window_seconds is None:
            hold_window_seconds = settings.hold_window_seconds
        if max_seats_per_hold is None:
            max_seats_per_hold = settings.max_seats_per_hold
        self.hold_window = timedelta(seconds=hold_window_seconds)
        self.max_seats_per_hold = max_seats_per_hold
        self.schedule_service = ScheduleService(db)
        self.booking_service = BookingService(db)

    # Request validation

    def _validate_session(self, session_id: str) -> None:
        if not session_id or not session_id.strip():
            raise InvalidSeatRequestError("session_id must not be empty")

    def _normalize_seat_ids(self, seat_ids: Sequence[UUID | str]) -> list[UUID]:
        if not seat_ids:
            raise InvalidSeatRequestError("At least one seat must be requested")

        normalized = []
        for seat_id in seat_ids:
            try:
                normalized.append(seat_id if isinstance(seat_id, UUID) else UUID(str(seat_id)))
            except ValueError:
                raise InvalidSeatRequestError(
                    f"'{seat_id}' is not a valid seat identifier",
                    errors={"seat_ids": [str(seat_id)]}
                ) from None

        if len(set(normalized)) != len(normalized):
            duplicates = sorted({str(s) for s in normalized if normalized.count(s) > 1})
            raise InvalidSeatRequestError(
                "Seat identifiers must not repeat",
                errors={"duplicate_seat_ids": duplicates}
            )

        return normalized

    def _validate_hold_request(self, seat_ids: Sequence[UUID | str], session_id: str) -> list[UUID]:
        self._validate_session(session_id)
        normalized = self._normalize_seat_ids(seat_ids)
        if len(normalized) > self.max_seats_per_hold:
            raise InvalidSeatRequestError(
                f"At most {self.max_seats_per_hold} seats can be held at once",
                errors={"requested": len(normalized), "max_seats_per_hold": self.max_seats_per_hold}
            )
        return normalized

    def _validate_schedule(self, schedule: Schedule, seat_ids: list[UUID], now: datetime) -> None:
        if not schedule.is_active:
            raise InvalidSeatRequestError(f"Schedule {schedule.id} is not open for booking")
        if schedule.departure_time <= now:
            raise InvalidSeatRequestError(f"Schedule {schedule.id} has already departed")

        known = {seat.id for seat in schedule.seats}
        unknown = [str(seat_id) for seat_id in seat_ids if seat_id not in known]
        if unknown:
            raise InvalidSeatRequestError(
                "Some seats do not belong to this schedule",
                errors={"unknown_seat_ids": unknown}
            )

    # Queries

    async def _load_session_hold(self, schedule_id: UUID, session_id: str) -> Hold | None:
        stmt = (
            select(Hold)
            .where(Hold.schedule_id == schedule_id, Hold.session_id == session_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _find_other_holds(
        self,
        schedule_id: UUID,
        seat_ids: list[UUID],
        session_id: str
    ) -> dict[UUID, UUID]:
        """Map each requested seat held by another session to its hold ID."""
        stmt = (
            select(HoldSeat.seat_id, HoldSeat.hold_id)
            .join(Hold, Hold.id == HoldSeat.hold_id)
            .where(
                HoldSeat.schedule_id == schedule_id,
                HoldSeat.seat_id.in_(seat_ids),
                Hold.session_id != session_id
            )
        )
        result = await self.db.execute(stmt)
        return {seat_id: hold_id for seat_id, hold_id in result.all()}

    async def _find_unavailable(
        self,
        schedule_id: UUID,
        seat_ids: list[UUID],
        session_id: str
    ) -> list[dict]:
        booked = await self.booking_service.find_booked_seats(schedule_id, seat_ids)
        held = await self._find_other_holds(schedule_id, seat_ids, session_id)

        unavailable = []
        for seat_id in seat_ids:
            if seat_id in booked:
                unavailable.append({"seat_id": str(seat_id), "state": "booked", "held_by": None})
            elif seat_id in held:
                unavailable.append({"seat_id": str(seat_id), "state": "held", "held_by": str(held[seat_id])})
        return unavailable

    async def get_session_hold(self, schedule_id: UUID, session_id: str) -> Hold | None:
        """Return the session's live hold on the schedule, if any."""
        hold = await self._load_session_hold(schedule_id, session_id)
        if hold is None or not hold.is_live(self.clock()):
            return None
        return hold

    # Expiry

    async def _expire_holds_locked(
        self,
        schedule_id: UUID,
        now: datetime,
        hold_ids: list[UUID] | None = None
    ) -> list[ExpiredHold]:
        """
        Delete the schedule's holds that are past expiry and commit.

        Must run under the schedule lock. The advisory lock is taken before
        expiry is checked, so a commit or renewal running in another process
        finishes first and the hold it consumed is no longer selected. Events
        are left to the caller, to be published once the lock is released.
        """
        try:
            await self.schedule_service.lock_schedule(schedule_id)

            stmt = (
                select(Hold)
                .where(Hold.schedule_id == schedule_id, Hold.expires_at <= now)
                .execution_options(populate_existing=True)
            )
            if hold_ids is not None:
                stmt = stmt.where(Hold.id.in_(hold_ids))

            holds = list((await self.db.execute(stmt)).scalars())
            if not holds:
                await self.db.rollback()
                return []

            expired = [ExpiredHold(hold.id, hold.session_id, hold.seat_ids, now) for hold in holds]
            for hold in holds:
                await self.db.delete(hold)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

        metrics_collector.record_holds_expired(len(expired))
        logger.info(
            "Expired seat holds removed",
            extra={"schedule_id": str(schedule_id), "expired_count": len(expired)}
        )
        return expired

    async def _publish_expired(self, schedule_id: UUID, expired: list[ExpiredHold]) -> None:
        for item in expired:
            await self.events.publish(
                schedule_id,
                SeatsUnlocked(
                    schedule_id=str(schedule_id),
                    seat_ids=_ids(item.seat_ids),
                    session_id=item.session_id,
                    reason=UnlockReason.EXPIRED,
                    timestamp=item.removed_at
                )
            )

    async def sweep_expired(self, batch_size: int | None = None) -> int:
        """
        Remove up to ``batch_size`` holds past expiry across all schedules.

        Holds are grouped by schedule and each group is expired under that
        schedule's lock. Busy schedules are skipped until the next sweep.

        Returns:
            Number of holds removed
        """
        if batch_size is None:
            batch_size = settings.hold_sweep_batch_size
        now = self.clock()

        stmt = (
            select(Hold.id, Hold.schedule_id)
            .where(Hold.expires_at <= now)
            .order_by(Hold.expires_at)
            .limit(batch_size)
        )
        rows = (await self.db.execute(stmt)).all()
        await self.db.rollback()

        by_schedule: dict[UUID, list[UUID]] = defaultdict(list)
        for hold_id, schedule_id in rows:
            by_schedule[schedule_id].append(hold_id)

        removed = 0
        for schedule_id, hold_ids in by_schedule.items():
            try:
                async with self.locks.locked(schedule_id):
                    expired = await self._expire_holds_locked(schedule_id, now, hold_ids)
            except ScheduleBusyError:
                logger.warning(
                    "Skipping busy schedule during hold sweep",
                    extra={"schedule_id": str(schedule_id), "pending_holds": len(hold_ids)}
                )
                continue
            await self._publish_expired(schedule_id, expired)
            removed += len(expired)

        active = (await self.db.execute(select(func.count(Hold.id)).where(Hold.expires_at > now))).scalar_one()
        await self.db.rollback()
        metrics_collector.set_active_holds(active)

        return removed

    # Holds

    async def attempt_hold(
        self,
        schedule_id: UUID,
        seat_ids: Sequence[UUID | str],
        session_id: str
    ) -> Hold:
        """
        Hold ``seat_ids`` for the session, replacing its previous hold.

        Args:
            schedule_id: Schedule the seats belong to
            seat_ids: Seats to hold, at most ``max_seats_per_hold``
            session_id: Opaque browser session identity

        Returns:
            The new hold

        Raises:
            InvalidSeatRequestError: Malformed request, inactive or departed schedule
            NotFoundError: If the schedule does not exist
            SeatsUnavailableError: If any seat is held by another session or booked
            ScheduleBusyError: If the schedule lock could not be acquired
        """
        requested = self._validate_hold_request(seat_ids, session_id)

        # Advisory only: lets other browsers grey the seats out early
        await self.events.publish(
            schedule_id,
            SeatsBeingLocked(
                schedule_id=str(schedule_id),
                seat_ids=_ids(requested),
                session_id=session_id,
                timestamp=self.clock()
            ),
            exclude_session_id=session_id
        )

        expired: list[ExpiredHold] = []
        try:
            async with self.locks.locked(schedule_id):
                now = self.clock()

                try:
                    expired = await self._expire_holds_locked(schedule_id, now)

                    schedule = await self.schedule_service.get_schedule_with_lock(schedule_id)
                    self._validate_schedule(schedule, requested, now)

                    unavailable = await self._find_unavailable(schedule_id, requested, session_id)
                    if unavailable:
                        for seat in unavailable:
                            metrics_collector.record_hold_conflict(seat["state"])
                        logger.info(
                            "Hold attempt rejected, seats unavailable",
                            extra={
                                "schedule_id": str(schedule_id),
                                "session_id": session_id,
                                "unavailable_seats": [seat["seat_id"] for seat in unavailable]
                            }
                        )
                        raise SeatsUnavailableError(str(schedule_id), unavailable)

                    previous_seats: list[UUID] = []
                    previous = await self._load_session_hold(schedule_id, session_id)
                    if previous is not None:
                        previous_seats = previous.seat_ids
                        await self.db.delete(previous)
                        # Old seat rows must be gone before the new ones are inserted
                        await self.db.flush()

                    hold = Hold(
                        schedule_id=schedule_id,
                        session_id=session_id,
                        created_at=now,
                        expires_at=now + self.hold_window
                    )
                    hold.seats = [HoldSeat(schedule_id=schedule_id, seat_id=seat_id) for seat_id in requested]
                    self.db.add(hold)
                    await self.db.commit()

                except ProblemDetailsException:
                    await self.db.rollback()
                    raise

                except IntegrityError as e:
                    # Another process took one of the seats between our check and insert
                    await self.db.rollback()
                    logger.warning(
                        "Hold insert rejected by seat uniqueness constraint",
                        extra={"schedule_id": str(schedule_id), "session_id": session_id, "error": str(e)}
                    )
                    unavailable = await self._find_unavailable(schedule_id, requested, session_id)
                    await self.db.rollback()
                    raise SeatsUnavailableError(
                        str(schedule_id),
                        unavailable or [
                            {"seat_id": str(seat_id), "state": "held", "held_by": None} for seat_id in requested
                        ]
                    ) from e

                except SQLAlchemyError as e:
                    await self.db.rollback()
                    logger.error(
                        "Hold attempt failed in storage",
                        extra={"schedule_id": str(schedule_id), "session_id": session_id, "error": str(e)},
                        exc_info=True
                    )
                    raise PersistenceFailureError("hold") from e

                metrics_collector.record_hold_created()
                logger.info(
                    "Seats held",
                    extra={
                        "hold_id": str(hold.id),
                        "schedule_id": str(schedule_id),
                        "session_id": session_id,
                        "seats": len(requested),
                        "replaced_seats": len(previous_seats),
                        "expires_at": hold.expires_at.isoformat()
                    }
                )
        finally:
            await self._publish_expired(schedule_id, expired)

        dropped = [seat_id for seat_id in previous_seats if seat_id not in set(requested)]
        if dropped:
            await self.events.publish(
                schedule_id,
                SeatsUnlocked(
                    schedule_id=str(schedule_id),
                    seat_ids=_ids(dropped),
                    session_id=session_id,
                    reason=UnlockReason.SUPERSEDED,
                    timestamp=now
                )
            )
        await self.events.publish(
            schedule_id,
            SeatsLocked(
                schedule_id=str(schedule_id),
                seat_ids=_ids(requested),
                session_id=session_id,
                expires_at=hold.expires_at,
                timestamp=now
            ),
            exclude_session_id=session_id
        )

        return hold

    async def _not_held_error(
        self,
        schedule_id: UUID,
        seat_ids: list[UUID],
        session_id: str,
        detail: str | None = None
    ) -> NotHeldError:
        held_elsewhere = await self._find_other_holds(schedule_id, seat_ids, session_id)
        return NotHeldError(
            str(schedule_id),
            not_held=[str(s) for s in seat_ids if s not in held_elsewhere],
            held_by_other=[str(s) for s in seat_ids if s in held_elsewhere],
            detail=detail
        )

    async def release(
        self,
        schedule_id: UUID,
        seat_ids: Sequence[UUID | str],
        session_id: str
    ) -> Hold | None:
        """
        Release some or all of the session's held seats.

        Returns:
            The shrunken hold, or None when every seat was released

        Raises:
            NotHeldError: If any requested seat is not held by the session
        """
        self._validate_session(session_id)
        requested = self._normalize_seat_ids(seat_ids)

        expired: list[ExpiredHold] = []
        try:
            async with self.locks.locked(schedule_id):
                now = self.clock()

                try:
                    expired = await self._expire_holds_locked(schedule_id, now)

                    await self.schedule_service.lock_schedule(schedule_id)
                    hold = await self._load_session_hold(schedule_id, session_id)
                    held = set(hold.seat_ids) if hold is not None else set()
                    missing = [seat_id for seat_id in requested if seat_id not in held]
                    if missing:
                        raise await self._not_held_error(schedule_id, missing, session_id)

                    release_set = set(requested)
                    if release_set == held:
                        await self.db.delete(hold)
                        remaining = None
                    else:
                        for hold_seat in [hs for hs in hold.seats if hs.seat_id in release_set]:
                            hold.seats.remove(hold_seat)
                        remaining = hold
                    await self.db.commit()

                except ProblemDetailsException:
                    await self.db.rollback()
                    raise

                except SQLAlchemyError as e:
                    await self.db.rollback()
                    logger.error(
                        "Hold release failed in storage",
                        extra={"schedule_id": str(schedule_id), "session_id": session_id, "error": str(e)},
                        exc_info=True
                    )
                    raise PersistenceFailureError("release") from e

                metrics_collector.record_seats_released(len(requested))
                logger.info(
                    "Seats released",
                    extra={
                        "schedule_id": str(schedule_id),
                        "session_id": session_id,
                        "released": len(requested),
                        "remaining": len(remaining.seats) if remaining else 0
                    }
                )
        finally:
            await self._publish_expired(schedule_id, expired)

        await self.events.publish(
            schedule_id,
            SeatsUnlocked(
                schedule_id=str(schedule_id),
                seat_ids=_ids(requested),
                session_id=session_id,
                reason=UnlockReason.RELEASED,
                timestamp=now
            )
        )

        return remaining

    async def renew(self, schedule_id: UUID, session_id: str) -> Hold:
        """
        Re-issue the session's live hold with a fresh window.

        Raises:
            NotHeldError: If the session has no live hold on the schedule
        """
        self._validate_session(session_id)

        expired: list[ExpiredHold] = []
        try:
            async with self.locks.locked(schedule_id):
                now = self.clock()

                try:
                    expired = await self._expire_holds_locked(schedule_id, now)

                    await self.schedule_service.lock_schedule(schedule_id)
                    previous = await self._load_session_hold(schedule_id, session_id)
                    if previous is None:
                        raise NotHeldError(str(schedule_id), detail="The session has no live hold on this schedule")

                    seat_ids = previous.seat_ids
                    await self.db.delete(previous)
                    await self.db.flush()

                    hold = Hold(
                        schedule_id=schedule_id,
                        session_id=session_id,
                        created_at=now,
                        expires_at=now + self.hold_window
                    )
                    hold.seats = [HoldSeat(schedule_id=schedule_id, seat_id=seat_id) for seat_id in seat_ids]
                    self.db.add(hold)
                    await self.db.commit()

                except ProblemDetailsException:
                    await self.db.rollback()
                    raise

                except SQLAlchemyError as e:
                    await self.db.rollback()
                    logger.error(
                        "Hold renewal failed in storage",
                        extra={"schedule_id": str(schedule_id), "session_id": session_id, "error": str(e)},
                        exc_info=True
                    )
                    raise PersistenceFailureError("renew") from e

                metrics_collector.record_hold_created()
                logger.info(
                    "Hold renewed",
                    extra={
                        "hold_id": str(hold.id),
                        "schedule_id": str(schedule_id),
                        "session_id": session_id,
                        "expires_at": hold.expires_at.isoformat()
                    }
                )
        finally:
            await self._publish_expired(schedule_id, expired)

        await self.events.publish(
            schedule_id,
            SeatsLocked(
                schedule_id=str(schedule_id),
                seat_ids=_ids(seat_ids),
                session_id=session_id,
                expires_at=hold.expires_at,
                timestamp=now
            ),
            exclude_session_id=session_id
        )

        return hold

    # Bookings

    async def commit(
        self,
        schedule_id: UUID,
        session_id: str,
        payment: PaymentConfirmation,
        passenger: PassengerDetails,
        seat_ids: Sequence[UUID | str] | None = None,
        seat_passenger_names: dict[str, str] | None = None
    ) -> Booking:
        """
        Turn the session's hold into a booking once payment has succeeded.

        The hold is re-validated, the booking inserted and the hold deleted in
        one transaction under the schedule lock. Storage failures are never
        retried here: the payment reference is surfaced for reconciliation.

        Raises:
            PaymentNotConfirmedError: Payment did not succeed; the hold is kept
            NotHeldError: The session holds nothing on the schedule
            HoldExpiredError: The session's hold is past expiry
            InvalidSeatRequestError: ``seat_ids`` differ from the held seats
            SeatsUnavailableError: A held seat was booked by someone else
            PersistenceFailureError: The store failed while committing
        """
        self._validate_session(session_id)

        if not payment.succeeded:
            logger.warning(
                "Commit refused, payment not confirmed",
                extra={
                    "schedule_id": str(schedule_id),
                    "session_id": session_id,
                    "payment_reference": payment.reference,
                    "payment_status": payment.status.value
                }
            )
            raise PaymentNotConfirmedError(payment.reference, payment.status.value)

        expected = self._normalize_seat_ids(seat_ids) if seat_ids is not None else None

        names: dict[UUID, str] = {}
        for seat_key, name in (seat_passenger_names or {}).items():
            names[self._normalize_seat_ids([seat_key])[0]] = name

        async with self.locks.locked(schedule_id):
            now = self.clock()

            try:
                schedule = await self.schedule_service.get_schedule_with_lock(schedule_id)

                hold = await self._load_session_hold(schedule_id, session_id)
                if hold is None:
                    raise NotHeldError(str(schedule_id), detail="The session has no hold on this schedule")
                if not hold.is_live(now):
                    raise HoldExpiredError(str(hold.id), hold.expires_at)

                held = hold.seat_ids
                if expected is not None and set(expected) != set(held):
                    raise InvalidSeatRequestError(
                        "Requested seats do not match the held seats",
                        errors={"requested": _ids(expected), "held": _ids(held)}
                    )
                unheld_names = [seat_id for seat_id in names if seat_id not in set(held)]
                if unheld_names:
                    raise InvalidSeatRequestError(
                        "Passenger names were given for seats outside the hold",
                        errors={"seat_passenger_names": _ids(unheld_names), "held": _ids(held)}
                    )

                booking = await self.booking_service.insert_booking_if_seats_free(
                    schedule,
                    held,
                    BookingDraft(
                        session_id=session_id,
                        passenger_name=passenger.name,
                        passenger_email=passenger.email,
                        passenger_phone=passenger.phone,
                        payment_reference=payment.reference,
                        seat_passenger_names=names
                    ),
                    now=now
                )
                await self.db.delete(hold)
                await self.db.commit()

            except ProblemDetailsException:
                await self.db.rollback()
                raise

            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(
                    "Booking commit failed in storage",
                    extra={
                        "schedule_id": str(schedule_id),
                        "session_id": session_id,
                        "payment_reference": payment.reference,
                        "error": str(e)
                    },
                    exc_info=True
                )
                raise PersistenceFailureError("commit", payment_reference=payment.reference) from e

            metrics_collector.record_booking_committed()
            logger.info(
                "Booking committed",
                extra={
                    "booking_id": str(booking.id),
                    "booking_code": booking.code,
                    "schedule_id": str(schedule_id),
                    "session_id": session_id,
                    "seats": len(held),
                    "payment_reference": payment.reference
                }
            )

        await self.events.publish(
            schedule_id,
            SeatsBooked(
                schedule_id=str(schedule_id),
                seat_ids=_ids(held),
                booking_id=str(booking.id),
                timestamp=now
            )
        )

        return booking

    async def cancel_booking(self, booking_id: UUID) -> Booking:
        """
        Cancel a booking and return its seats to available.

        Cancelling an already cancelled booking returns it unchanged.

        Raises:
            NotFoundError: If the booking does not exist
        """
        booking = await self.booking_service.get_booking(booking_id)
        schedule_id = booking.schedule_id
        await self.db.rollback()

        async with self.locks.locked(schedule_id):
            now = self.clock()
            try:
                await self.schedule_service.get_schedule_with_lock(schedule_id)
                booking = await self.booking_service.get_booking(booking_id)
                released = await self.booking_service.cancel_booking(booking, now)
                await self.db.commit()

            except ProblemDetailsException:
                await self.db.rollback()
                raise

            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(
                    "Booking cancellation failed in storage",
                    extra={"booking_id": str(booking_id), "error": str(e)},
                    exc_info=True
                )
                raise PersistenceFailureError("cancel") from e

        if released:
            metrics_collector.record_booking_cancelled()
            await self.events.publish(
                schedule_id,
                SeatsUnlocked(
                    schedule_id=str(schedule_id),
                    seat_ids=_ids(released),
                    reason=UnlockReason.CANCELLED,
                    timestamp=now
                )
            )

        return booking

