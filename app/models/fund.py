"""Fund ledger models."""
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Integer, String, Text, DateTime, Numeric, ForeignKey, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class FundType(str, Enum):
    INVESTMENT = "investment"
    RETURN = "return"


class FundStatus(str, Enum):
    ACTIVE = "active"
    DEPLETED = "depleted"
    RETURNED = "returned"


class FundUsageType(str, Enum):
    PURCHASE = "purchase"
    MANUFACTURING_COST = "manufacturing_cost"
    OTHER = "other"


class FundReturnStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"


class Fund(Base):
    """
    Pool of money allocated to finance purchases and costs.

    `balance` and `status` are projections: balance = amount - sum(usage.amount),
    recomputed by FundService on every mutation.
    """
    __tablename__ = "funds"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_fund_balance_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False, comment="investment, return")
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        String(50), default=FundStatus.ACTIVE.value, nullable=False, index=True,
        comment="active, depleted, returned"
    )

    from_user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    to_user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    # Original investment fund for type=return rows
    reference_id: Mapped[Optional[int]] = mapped_column(ForeignKey("funds.id"))
    description: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<Fund {self.id} {self.type} balance={self.balance} ({self.status})>"


class FundUsage(Base):
    """Spend against a fund. Rows are never edited, only deleted by compensating deletion."""
    __tablename__ = "fund_usage"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    fund_id: Mapped[int] = mapped_column(ForeignKey("funds.id"), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False, comment="purchase, manufacturing_cost, other")
    reference_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text)

    used_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )


class FundReturn(Base):
    """Sale revenue a distributor hands back to the owner, pending approval."""
    __tablename__ = "fund_returns"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sale_id: Mapped[int] = mapped_column(ForeignKey("sales.id"), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        String(50), default=FundReturnStatus.PENDING.value, nullable=False,
        comment="pending, approved"
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)

    requested_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"))
    approved_by: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"))
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
