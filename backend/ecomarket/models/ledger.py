"""
Per-user reward ledgers.

Both ledgers share one shape: a lifetime total that only grows through
credits and a spendable balance that never goes below zero.
"""
from sqlalchemy import BigInteger, CheckConstraint, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from ecomarket.db.base import Base


class UserRevenue(Base):
    """Seller revenue in yen."""

    __tablename__ = "user_revenues"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_user_revenues_balance_non_negative"),
    )

    uid: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    total: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    balance: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<UserRevenue uid={self.uid} balance={self.balance}>"


class UserTreePoints(Base):
    """Tree points earned by buying second-hand."""

    __tablename__ = "user_tree_points"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_user_tree_points_balance_non_negative"),
    )

    uid: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    total: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    balance: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    def __repr__(self) -> str:
        return f"<UserTreePoints uid={self.uid} balance={self.balance}>"
