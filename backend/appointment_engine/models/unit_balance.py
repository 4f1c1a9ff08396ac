"""Monthly unit allocation per client and speciality.

The quota system owns these rows; the engine only reads them.
"""

from datetime import date

from sqlalchemy import Date, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from appointment_engine.database import Base


class UnitBalance(Base):
    __tablename__ = "unit_balances"
    __table_args__ = (
        UniqueConstraint("client_id", "speciality_id", "month_year", name="uq_unit_balance_month"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    client_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    speciality_id: Mapped[int] = mapped_column(Integer, nullable=False)
    # First day of the quota month
    month_year: Mapped[date] = mapped_column(Date, nullable=False)
    total_allocated: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_used: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_remaining: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<UnitBalance client={self.client_id} speciality={self.speciality_id} "
            f"{self.month_year:%Y-%m} remaining={self.total_remaining}>"
        )
