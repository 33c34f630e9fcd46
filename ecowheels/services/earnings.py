"""Earnings summary and payouts."""

from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Callable

from ecowheels.auth.session import DriverSession
from ecowheels.errors import InvalidInputError
from ecowheels.models.ledger import (
    EarningsBreakdownItem,
    EarningsEntry,
    EarningsSummary,
    EarningsType,
    MonthlyEarnings,
    Payout,
    PayoutStatus,
)
from ecowheels.state.documents import (
    EARNINGS,
    PAYOUT_ACCOUNTS,
    PAYOUTS,
    DocumentAppend,
    DocumentStore,
    Query,
    WritePlan,
)
from ecowheels.utils.logging import get_logger

logger = get_logger(__name__)

CENTS = Decimal("0.01")
MONTHS_SHOWN = 6

BREAKDOWN_NAMES = {
    EarningsType.BASE: "Base Fees",
    EarningsType.DISTANCE: "Distance Fees",
    EarningsType.PEAK: "Peak Hour Surcharges",
    EarningsType.TIP: "Tips",
}

# Payouts that reduce the available balance
COMMITTED_PAYOUT_STATUSES = (PayoutStatus.PENDING, PayoutStatus.COMPLETED)


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def _month_keys(now: datetime, count: int) -> list[str]:
    """``YYYY-MM`` labels for the last ``count`` months, oldest first."""
    year, month = now.year, now.month
    keys = []
    for _ in range(count):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


class EarningsService:
    """Reads the earnings ledger and records payout requests."""

    def __init__(self, store: DocumentStore, clock: Callable[[], datetime] | None = None):
        self.store = store
        self.settings = store.settings
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def entries(self, driver_id: str) -> list[EarningsEntry]:
        """Ledger entries for a driver, newest first."""
        query = Query(EARNINGS).where("driver_id", "==", driver_id).ordered_by("date", True)
        return [EarningsEntry.model_validate(doc) for doc in await self.store.query(query)]

    async def payouts(self, driver_id: str, limit: int | None = None) -> list[Payout]:
        query = Query(PAYOUTS).where("driver_id", "==", driver_id).ordered_by("date", True)
        if limit is not None:
            query = query.limited(limit)
        return [Payout.model_validate(doc) for doc in await self.store.query(query)]

    def available_balance(self, total: Decimal, payouts: list[Payout]) -> Decimal:
        """Payable share of total earnings less payouts already requested or paid."""
        ratio = Decimal(str(self.settings.payout_available_ratio))
        committed = sum(
            (p.amount for p in payouts if p.status in COMMITTED_PAYOUT_STATUSES),
            Decimal("0"),
        )
        return _money(max(total * ratio - committed, Decimal("0")))

    async def summary(self, session: DriverSession) -> EarningsSummary:
        """
        Aggregate a driver's ledger.

        Args:
            session: Active driver session

        Returns:
            Totals, weekly earnings, available balance, tips, per-type
            breakdown and monthly totals for the last six months
        """
        session.require_active()
        now = self._clock()
        entries = await self.entries(session.uid)
        payouts = await self.payouts(session.uid)

        zero = Decimal("0")
        total = sum((e.amount for e in entries), zero)
        week_start = now - timedelta(days=self.settings.weekly_window_days)
        weekly = sum((e.amount for e in entries if e.date > week_start), zero)

        by_type = {earnings_type: zero for earnings_type in EarningsType}
        for entry in entries:
            by_type[entry.type] += entry.amount

        months = {key: zero for key in _month_keys(now, MONTHS_SHOWN)}
        for entry in entries:
            key = entry.date.strftime("%Y-%m")
            if key in months:
                months[key] += entry.amount

        return EarningsSummary(
            total_earnings=_money(total),
            weekly_earnings=_money(weekly),
            available_balance=self.available_balance(total, payouts),
            tips=_money(by_type[EarningsType.TIP]),
            breakdown=[
                EarningsBreakdownItem(
                    type=earnings_type, name=BREAKDOWN_NAMES[earnings_type], value=_money(value)
                )
                for earnings_type, value in by_type.items()
            ],
            monthly=[
                MonthlyEarnings(month=month, earnings=_money(value))
                for month, value in months.items()
            ],
        )

    async def payout_history(self, session: DriverSession) -> list[Payout]:
        session.require_active()
        return await self.payouts(session.uid, limit=self.settings.payout_history_limit)

    async def request_payout(self, session: DriverSession, amount: Decimal | str | float) -> Payout:
        """Create a pending payout no larger than the available balance."""
        session.require_active()
        try:
            amount = Decimal(str(amount))
        except InvalidOperation as e:
            raise InvalidInputError(f"Invalid payout amount: {amount}") from e
        if not amount.is_finite():
            raise InvalidInputError(f"Invalid payout amount: {amount}")
        amount = _money(amount)
        if amount <= 0:
            raise InvalidInputError("Payout amount must be positive")

        payout = Payout(driver_id=session.uid, amount=amount, date=self._clock())

        async def plan(account: dict | None) -> WritePlan:
            # Re-read under the watch on the payout account so a concurrent
            # request that commits first forces this check to run again
            entries = await self.entries(session.uid)
            payouts = await self.payouts(session.uid)
            total = sum((e.amount for e in entries), Decimal("0"))
            available = self.available_balance(total, payouts)
            if amount > available:
                logger.warning(
                    "payout_rejected",
                    driver_id=session.uid,
                    amount=str(amount),
                    available=str(available),
                )
                raise InvalidInputError(
                    f"Requested amount exceeds available balance of {available}"
                )
            return WritePlan(
                updates={
                    "driver_id": session.uid,
                    "last_payout_id": payout.id,
                    "payout_count": (account or {}).get("payout_count", 0) + 1,
                },
                appends=[DocumentAppend(PAYOUTS, payout.model_dump(mode="json"), payout.id)],
            )

        await self.store.transact(PAYOUT_ACCOUNTS, session.uid, plan)

        logger.info(
            "payout_requested", driver_id=session.uid, payout_id=payout.id, amount=str(amount)
        )
        return payout
