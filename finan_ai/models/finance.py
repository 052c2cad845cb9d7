"""
Core Data Models for Finan AI

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for key-value storage and logging
4. Accept the legacy camelCase field names of stored data

DESIGN DECISION: Records are plain data. Behavior lives in the store
(mutators), the recurrence materializer and the report functions.
"""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


CENT = Decimal("0.01")


def new_id() -> str:
    """Generate an opaque record id."""
    return str(uuid4())


def _alias(name: str, legacy: str) -> AliasChoices:
    return AliasChoices(name, legacy)


def _to_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def round_to_cents(value: Any) -> Any:
    """
    Before-validator for money fields.

    Rounding happens before the gt=0 constraint is checked, so 0.004 is
    seen as 0.00 and rejected. Anything that is not a finite number is
    passed through for pydantic to report.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
        return value
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except InvalidOperation:
        return value
    if not amount.is_finite():
        return value
    return _to_cents(amount)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of money flow."""
    INCOME = "income"
    EXPENSE = "expense"


class Frequency(str, Enum):
    """How often a recurring rule produces a transaction."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class BudgetPeriod(str, Enum):
    """Budget period. Only monthly budgets exist."""
    MONTHLY = "monthly"


class ChatMode(str, Enum):
    """
    Assistant modes.

    Each mode keeps its own chat history.
    """
    QUICK = "quick"          # Fast answers, lightest model
    SEARCH = "search"        # Grounded with Google Search
    THINKING = "thinking"    # Deep analysis, strongest model
    ACTIONS = "actions"      # Function calling: add transactions


class ChatRole(str, Enum):
    USER = "user"
    MODEL = "model"
    TOOL = "tool"


# =============================================================================
# LEDGER
# =============================================================================

class TransactionDraft(BaseModel):
    """
    A transaction that has not been given an id yet.

    Produced by the recurrence materializer, by AI extraction and by
    file import. It becomes a Transaction when added to the ledger.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    date: date
    description: str = Field(
        ...,
        min_length=1,
        max_length=500,
        description="What the money was for"
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Positive amount; direction is given by type"
    )
    type: TransactionType
    category_id: str = Field(
        default="",
        validation_alias=_alias("category_id", "categoryId"),
        description="Category id, empty when uncategorized"
    )

    @field_validator("amount", mode="before")
    @classmethod
    def round_amount(cls, v: Any) -> Any:
        return round_to_cents(v)

    def to_transaction(self) -> "Transaction":
        """Give the draft a fresh id."""
        return Transaction(id=new_id(), **self.model_dump())


class Transaction(TransactionDraft):
    """A ledger entry. Carries no reference to the rule that produced it."""

    id: str = Field(default_factory=new_id)

    def to_draft(self) -> TransactionDraft:
        return TransactionDraft(**self.model_dump(exclude={"id"}))


class Category(BaseModel):
    """A user-defined category for income or expenses."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType


DEFAULT_CATEGORIES: tuple[Category, ...] = (
    Category(id="1", name="Food & Drinks", type=TransactionType.EXPENSE),
    Category(id="2", name="Shopping", type=TransactionType.EXPENSE),
    Category(id="3", name="Housing", type=TransactionType.EXPENSE),
    Category(id="4", name="Transportation", type=TransactionType.EXPENSE),
    Category(id="5", name="Education", type=TransactionType.EXPENSE),
    Category(id="6", name="Entertainment", type=TransactionType.EXPENSE),
    Category(id="7", name="Income", type=TransactionType.INCOME),
)


class RecurringTransaction(BaseModel):
    """
    A template that periodically produces concrete transactions.

    INVARIANT: next_due_date is the earliest occurrence that has not been
    materialized yet. It only ever moves forward, and only through the
    recurrence materializer.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    description: str = Field(..., min_length=1, max_length=500)
    amount: Decimal = Field(..., gt=0)
    type: TransactionType
    category_id: str = Field(
        default="",
        validation_alias=_alias("category_id", "categoryId"),
    )
    frequency: Frequency
    start_date: date = Field(
        ...,
        validation_alias=_alias("start_date", "startDate"),
    )
    next_due_date: date = Field(
        ...,
        validation_alias=_alias("next_due_date", "nextDueDate"),
    )
    end_date: Optional[date] = Field(
        default=None,
        validation_alias=_alias("end_date", "endDate"),
    )

    @field_validator("amount", mode="before")
    @classmethod
    def round_amount(cls, v: Any) -> Any:
        return round_to_cents(v)

    @field_validator("end_date", mode="before")
    @classmethod
    def blank_end_date(cls, v):
        """Forms and legacy data use an empty string for 'no end date'."""
        if v == "":
            return None
        return v

    @model_validator(mode="after")
    def validate_dates(self) -> "RecurringTransaction":
        if self.next_due_date < self.start_date:
            raise ValueError("Next due date cannot be before start date")
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        return self

    @classmethod
    def create(
        cls,
        description: str,
        amount: Decimal,
        type: TransactionType,
        category_id: str,
        frequency: Frequency,
        start_date: date,
        end_date: Optional[date] = None,
    ) -> "RecurringTransaction":
        """New rule: the first occurrence is due on the start date."""
        return cls(
            description=description,
            amount=amount,
            type=type,
            category_id=category_id,
            frequency=frequency,
            start_date=start_date,
            next_due_date=start_date,
            end_date=end_date,
        )

    def occurrence(self, on: date) -> TransactionDraft:
        """The concrete transaction this rule produces on a given date."""
        return TransactionDraft(
            date=on,
            description=self.description,
            amount=self.amount,
            type=self.type,
            category_id=self.category_id,
        )


# =============================================================================
# PLANNING
# =============================================================================

class Budget(BaseModel):
    """Monthly spending limit for one category."""

    id: str = Field(default_factory=new_id)
    category_id: str = Field(
        ...,
        validation_alias=_alias("category_id", "categoryId"),
    )
    limit: Decimal = Field(..., gt=0)
    period: BudgetPeriod = BudgetPeriod.MONTHLY


class Goal(BaseModel):
    """A savings goal."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=200)
    target_amount: Decimal = Field(
        ...,
        gt=0,
        validation_alias=_alias("target_amount", "targetAmount"),
    )
    saved_amount: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        validation_alias=_alias("saved_amount", "savedAmount"),
    )
    target_date: Optional[date] = Field(
        default=None,
        validation_alias=_alias("target_date", "targetDate"),
    )

    @field_validator("target_date", mode="before")
    @classmethod
    def blank_target_date(cls, v):
        if v == "":
            return None
        return v

    @property
    def progress(self) -> float:
        """Saved amount as a percentage of the target."""
        return float(self.saved_amount / self.target_amount * 100)


class Investment(BaseModel):
    """A holding with its purchase details and an optional market price."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=200)
    quantity: Decimal = Field(..., ge=0)
    purchase_price: Decimal = Field(
        ...,
        ge=0,
        validation_alias=_alias("purchase_price", "purchasePrice"),
    )
    purchase_date: date = Field(
        ...,
        validation_alias=_alias("purchase_date", "purchaseDate"),
    )
    current_price: Optional[Decimal] = Field(
        default=None,
        ge=0,
        validation_alias=_alias("current_price", "currentPrice"),
    )

    @property
    def cost_basis(self) -> Decimal:
        return self.quantity * self.purchase_price

    @property
    def current_value(self) -> Optional[Decimal]:
        if self.current_price is None:
            return None
        return self.quantity * self.current_price

    @property
    def valuation(self) -> Decimal:
        """Current value, falling back to cost basis when no price is known."""
        value = self.current_value
        return value if value is not None else self.cost_basis

    @property
    def profit_loss(self) -> Optional[Decimal]:
        value = self.current_value
        if value is None:
            return None
        return value - self.cost_basis

    @property
    def profit_loss_percent(self) -> Optional[float]:
        pl = self.profit_loss
        if pl is None or self.cost_basis == 0:
            return None
        return float(pl / self.cost_basis * 100)


class ManualEntry(BaseModel):
    """A manually tracked asset or liability for net worth."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=200)
    value: Decimal = Field(..., ge=0)


# =============================================================================
# CHAT & USERS
# =============================================================================

class ChatMessage(BaseModel):
    """One turn of an assistant conversation."""

    role: ChatRole
    text: str
    # Search-grounded replies: [{"title": ..., "uri": ...}]
    sources: list[dict[str, str]] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def accept_parts(cls, data):
        """Legacy messages store text as parts: [{"text": ...}]."""
        if isinstance(data, dict) and "text" not in data and "parts" in data:
            parts = data.get("parts") or []
            text = "".join(
                part.get("text", "") for part in parts if isinstance(part, dict)
            )
            return {"role": data.get("role"), "text": text}
        return data


class User(BaseModel):
    """
    A registered user.

    NOTE: The email doubles as the storage namespace for the user's data.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(..., min_length=3, max_length=320)
    password_hash: str = Field(..., description="bcrypt hash, salt included")
