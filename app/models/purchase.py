"""Raw material purchase model."""
from datetime import datetime, date, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import Integer, String, Text, Date, DateTime, Numeric, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class Purchase(Base):
    """
    Raw material purchase.

    Creating one credits material stock and, when paid from a fund, debits
    that fund through a FundUsage row referencing this purchase.
    """
    __tablename__ = "purchases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    material_id: Mapped[int] = mapped_column(ForeignKey("raw_materials.id"), nullable=False, index=True)
    fund_id: Mapped[Optional[int]] = mapped_column(ForeignKey("funds.id"), index=True)

    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    supplier: Mapped[Optional[str]] = mapped_column(String(200))
    purchase_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    created_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<Purchase {self.id} material={self.material_id} qty={self.quantity}>"
