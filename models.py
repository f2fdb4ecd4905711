import uuid
from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


def new_id() -> str:
    return str(uuid.uuid4())


class TransactionType(str, Enum):
    income = "INCOME"
    expense = "EXPENSE"


class AccountType(str, Enum):
    bank = "BANK"
    credit_card = "CREDIT_CARD"
    investment = "INVESTMENT"


class CategorySubtype(str, Enum):
    fixed = "FIXA"
    variable = "VARIAVEL"


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


TRANSACTION_TYPE_ENUM = SAEnum(
    TransactionType, name="transactiontype", values_callable=_enum_values
)
ACCOUNT_TYPE_ENUM = SAEnum(AccountType, name="accounttype", values_callable=_enum_values)
CATEGORY_SUBTYPE_ENUM = SAEnum(
    CategorySubtype, name="categorysubtype", values_callable=_enum_values
)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Account(Base, TimestampMixin):
    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[AccountType] = mapped_column(ACCOUNT_TYPE_ENUM, nullable=False)
    initial_balance_cents: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False
    )
    closing_day: Mapped[Optional[int]] = mapped_column(Integer)
    due_day: Mapped[Optional[int]] = mapped_column(Integer)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="account"
    )

    __table_args__ = (
        CheckConstraint(
            "closing_day IS NULL OR (closing_day BETWEEN 1 AND 31)",
            name="ck_account_closing_day_range",
        ),
        CheckConstraint(
            "due_day IS NULL OR (due_day BETWEEN 1 AND 31)",
            name="ck_account_due_day_range",
        ),
    )

    @property
    def is_credit_card(self) -> bool:
        return self.type == AccountType.credit_card


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[TransactionType] = mapped_column(TRANSACTION_TYPE_ENUM, nullable=False)
    subtype: Mapped[CategorySubtype] = mapped_column(
        CATEGORY_SUBTYPE_ENUM, default=CategorySubtype.variable, nullable=False
    )
    impacts_budget: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (UniqueConstraint("name", name="uq_category_name"),)


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    type: Mapped[TransactionType] = mapped_column(TRANSACTION_TYPE_ENUM, nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    is_applied: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    observations: Mapped[Optional[str]] = mapped_column(Text)
    account_id: Mapped[Optional[str]] = mapped_column(ForeignKey("accounts.id"))
    # "MM/YYYY" credit-card bucket
    invoice_month: Mapped[Optional[str]] = mapped_column(String(7))
    fitid: Mapped[Optional[str]] = mapped_column(String(255))
    batch_id: Mapped[Optional[str]] = mapped_column(String(36))
    installment_number: Mapped[Optional[int]] = mapped_column(Integer)
    total_installments: Mapped[Optional[int]] = mapped_column(Integer)

    account: Mapped[Optional["Account"]] = relationship(
        "Account", back_populates="transactions"
    )
    splits: Mapped[list["TransactionSplit"]] = relationship(
        "TransactionSplit",
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="TransactionSplit.position",
    )

    __table_args__ = (
        Index("ix_transactions_date", "date"),
        Index("ix_transactions_fitid", "fitid"),
        Index("ix_transactions_account_invoice", "account_id", "invoice_month"),
        Index("ix_transactions_description", "description"),
        CheckConstraint("amount_cents >= 0", name="ck_transactions_amount_positive"),
    )


class TransactionSplit(Base):
    __tablename__ = "transaction_splits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    transaction_id: Mapped[str] = mapped_column(
        ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    category_name: Mapped[str] = mapped_column(String(100), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    transaction: Mapped["Transaction"] = relationship(
        "Transaction", back_populates="splits"
    )


class Budget(Base, TimestampMixin):
    __tablename__ = "budgets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    category_id: Mapped[str] = mapped_column(
        ForeignKey("categories.id"), nullable=False
    )
    # 0-11, January is 0
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    category: Mapped["Category"] = relationship("Category")

    __table_args__ = (
        UniqueConstraint(
            "category_id", "month", "year", name="uq_budget_category_month_year"
        ),
        CheckConstraint("month BETWEEN 0 AND 11", name="ck_budget_month_range"),
        Index("ix_budget_month_year", "year", "month"),
    )
