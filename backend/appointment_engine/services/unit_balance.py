"""Monthly unit quota projection."""

from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from appointment_engine.errors import ValidationUnavailable
from appointment_engine.models.unit_balance import UnitBalance
from appointment_engine.schemas.scheduling import UnitBalanceProjection
from appointment_engine.schemas.validation import IssueSeverity, ValidationIssue, ValidationReport
from appointment_engine.services.lookups import bounded_lookup
from appointment_engine.utils.clock import month_start, units_for
from appointment_engine.utils.logging import get_logger

logger = get_logger("engine.unit_balance")

SOURCE = "unit_balance"


class UnitBalanceCalculator:
    """Reads a client's monthly balance and projects it after a proposed visit.

    The balance row belongs to the quota system; nothing here writes to it.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _balance_for(
        self, client_id: int, speciality_id: int, month: date
    ) -> Optional[UnitBalance]:
        result = await bounded_lookup(
            SOURCE,
            self.db.execute(
                select(UnitBalance).where(
                    UnitBalance.client_id == client_id,
                    UnitBalance.speciality_id == speciality_id,
                    UnitBalance.month_year == month,
                )
            ),
        )
        return result.scalar_one_or_none()

    async def project(
        self,
        client_id: int,
        speciality_id: int,
        day: date,
        duration_minutes: Optional[int] = None,
        required_units: Optional[int] = None,
    ) -> UnitBalanceProjection:
        """Project the remaining balance.

        ``required_units`` wins over ``duration_minutes`` when both are given.
        """
        if required_units is None:
            required_units = units_for(duration_minutes or 0)

        month = month_start(day)
        balance = await self._balance_for(client_id, speciality_id, month)

        available = balance.total_remaining if balance is not None else 0
        projected = available - required_units
        projection = UnitBalanceProjection(
            client_id=client_id,
            speciality_id=speciality_id,
            month_year=month,
            balance_found=balance is not None,
            total_allocated=balance.total_allocated if balance is not None else 0,
            total_used=balance.total_used if balance is not None else 0,
            available=available,
            required=required_units,
            projected=projected,
            insufficient=projected < 0,
        )

        logger.info(
            "unit_balance_projected",
            client_id=client_id,
            speciality_id=speciality_id,
            month=month.isoformat(),
            available=projection.available,
            required=projection.required,
            projected=projection.projected,
        )
        return projection

    async def check(
        self,
        client_id: int,
        speciality_id: int,
        day: date,
        duration_minutes: int,
    ) -> ValidationReport:
        """Advisory check used by booking commands. Never raises for insufficiency."""
        report = ValidationReport()
        try:
            projection = await self.project(
                client_id, speciality_id, day, duration_minutes=duration_minutes
            )
        except ValidationUnavailable as e:
            report.add(
                ValidationIssue(
                    code="unit_balance_unavailable",
                    message=str(e),
                    severity=IssueSeverity.UNAVAILABLE,
                    source=SOURCE,
                )
            )
            return report

        if not projection.balance_found:
            report.add(
                ValidationIssue(
                    code="no_allocation",
                    message=(
                        f"No unit allocation found for {projection.month_year:%B %Y}; "
                        f"this visit needs {projection.required} units"
                    ),
                    severity=IssueSeverity.ADVISORY,
                    source=SOURCE,
                )
            )
        elif projection.insufficient:
            report.add(
                ValidationIssue(
                    code="insufficient_units",
                    message=(
                        f"Client has {projection.available} units remaining but this visit "
                        f"needs {projection.required} (projected {projection.projected})"
                    ),
                    severity=IssueSeverity.ADVISORY,
                    source=SOURCE,
                )
            )
        return report
