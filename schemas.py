import datetime as dt
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models import AccountType, CategorySubtype, TransactionType

INVOICE_MONTH_PATTERN = r"^(0[1-9]|1[0-2])/\d{4}$"


class ImportKind(str, Enum):
    transactions = "transactions"
    categories = "categories"
    accounts = "accounts"


class InstallmentHint(BaseModel):
    model_config = ConfigDict(frozen=True)

    current: int = Field(..., gt=0)
    total: int = Field(..., gt=0, le=99)

    @property
    def remaining_to_generate(self) -> int:
        return self.total - self.current + 1


class SplitIn(BaseModel):
    category_name: str = Field(..., min_length=1, max_length=100)
    amount_cents: int = Field(..., ge=0)


class StatementEntry(BaseModel):
    date: dt.date
    amount_cents: int = Field(..., ge=0)
    type: TransactionType
    description: str = Field(..., min_length=1, max_length=255)
    fitid: Optional[str] = None
    category: Optional[str] = None
    splits: list[SplitIn] = Field(default_factory=list)
    installment: Optional[InstallmentHint] = None


class TransactionIn(BaseModel):
    description: str = Field(..., min_length=1, max_length=255)
    amount_cents: int = Field(..., ge=0)
    date: Optional[dt.date] = None
    type: TransactionType
    category: Optional[str] = Field(default=None, max_length=100)
    splits: list[SplitIn] = Field(default_factory=list)
    account_id: Optional[str] = None
    invoice_month: Optional[str] = Field(default=None, pattern=INVOICE_MONTH_PATTERN)
    installments: int = Field(default=1, ge=1, le=99)
    is_applied: bool = True
    observations: Optional[str] = None


class TransactionUpdateIn(BaseModel):
    description: str = Field(..., min_length=1, max_length=255)
    amount_cents: int = Field(..., ge=0)
    date: dt.date
    type: TransactionType
    category: str = Field(..., min_length=1, max_length=100)
    splits: list[SplitIn] = Field(default_factory=list)
    is_applied: bool = True
    account_id: Optional[str] = None
    invoice_month: Optional[str] = Field(default=None, pattern=INVOICE_MONTH_PATTERN)
    observations: Optional[str] = None


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    subtype: CategorySubtype = CategorySubtype.variable
    impacts_budget: bool = True


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType
    initial_balance_cents: int = 0
    closing_day: Optional[int] = Field(default=None, ge=1, le=31)
    due_day: Optional[int] = Field(default=None, ge=1, le=31)
    is_default: bool = False

    @model_validator(mode="after")
    def _check_card_days(self) -> "AccountIn":
        if self.type == AccountType.credit_card:
            if self.closing_day is None or self.due_day is None:
                raise ValueError("Credit cards require closing and due days")
            self.initial_balance_cents = 0
        else:
            self.closing_day = None
            self.due_day = None
        return self


class BudgetIn(BaseModel):
    category_id: str
    month: int = Field(..., ge=0, le=11)
    year: int = Field(..., ge=1970, le=3000)
    amount_cents: int


class BudgetAdjustmentIn(BaseModel):
    category_id: str
    delta_cents: int


class ReallocationIn(BaseModel):
    source_category_id: str
    month: int = Field(..., ge=0, le=11)
    year: int = Field(..., ge=1970, le=3000)
    adjustments: list[BudgetAdjustmentIn]


class ImportStatus(str, Enum):
    new = "NEW"
    duplicate = "DUPLICATE"
    update_value = "UPDATE_VALUE"


class ImportCandidate(BaseModel):
    id: str
    entry: StatementEntry
    status: ImportStatus
    source: str = Field(..., pattern=r"^(OFX|CSV)$")
    selected: bool = True
    category: str = ""
    friendly_description: Optional[str] = Field(default=None, max_length=255)
    # row overwritten by an UPDATE_VALUE candidate
    existing_id: Optional[str] = None


class ImportDestinationIn(BaseModel):
    account_id: str
    invoice_month: Optional[str] = Field(default=None, pattern=INVOICE_MONTH_PATTERN)


class ImportSelectionIn(BaseModel):
    candidate_id: str
    selected: bool = True
    category: Optional[str] = Field(default=None, max_length=100)
    friendly_description: Optional[str] = Field(default=None, max_length=255)


class ImportConfirmIn(BaseModel):
    destination: ImportDestinationIn
    candidates: list[ImportCandidate]
    selections: list[ImportSelectionIn] = Field(default_factory=list)


class InvoiceCloseIn(BaseModel):
    account_id: str
    invoice_month: str = Field(..., pattern=INVOICE_MONTH_PATTERN)


class BulkIdsIn(BaseModel):
    ids: list[str] = Field(..., min_length=1)


class YearlyBudgetIn(BaseModel):
    category_id: str
    year: int = Field(..., ge=1970, le=3000)
    amount_cents: int


class BudgetGenerateIn(BaseModel):
    year: int = Field(..., ge=1970, le=3000)
    # category id -> monthly amount; omitted means year-to-date averages
    amounts: Optional[dict[str, int]] = None
