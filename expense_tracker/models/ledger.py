"""
Core Ledger Models for Expense Tracker

These models define the schemas for every entity the ledger stores,
the payloads accepted when creating them, the explicit update variants
allowed afterwards, and the summary bundle computed from them.

DESIGN DECISION: Money is always a Decimal quantized to 2 places.
Binary floats never take part in ledger arithmetic, so 100.00 + 0.10
is exactly 100.10. Floats that arrive from a client are converted
through their string form before quantizing.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any, ClassVar, Optional, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
)


TWO_PLACES = Decimal("0.01")


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as local wall-clock time."""
    if value.tzinfo is None:
        return value.astimezone()
    return value


def to_money(value: Any) -> Decimal:
    """
    Convert a number or numeric string to a 2-place Decimal.

    Raises ValueError for values that are not numbers.
    """
    if isinstance(value, bool):
        raise ValueError("Amount must be a number, not a boolean")
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value) if not isinstance(value, Decimal) else value
    except (InvalidOperation, TypeError):
        raise ValueError(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def format_money(amount: Decimal) -> str:
    """Format an amount as a plain 2-place string, e.g. '2450.00'."""
    return f"{to_money(amount):.2f}"


Money = Annotated[Decimal, BeforeValidator(to_money)]
PositiveMoney = Annotated[Decimal, BeforeValidator(to_money), Field(gt=0)]
LocalDateTime = Annotated[datetime, AfterValidator(ensure_aware)]


def reject_null(model: type, value: Any, field_name: str) -> Any:
    """
    Refuse an explicit null in a partial update.

    DESIGN DECISION: Omitting a field leaves it unchanged; only fields a
    model lists in nullable_fields may be cleared by sending null.
    """
    if value is None and field_name not in model.nullable_fields:
        raise ValueError(f"{field_name} cannot be null")
    return value


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountType(str, Enum):
    """Kinds of balance bucket."""
    MAIN = "main"
    SAVINGS = "savings"
    OTHER = "other"


class TransactionType(str, Enum):
    """Direction of a transaction. The amount itself is always positive."""
    EXPENSE = "expense"
    INCOME = "income"


class Category(str, Enum):
    """
    Spending categories.

    DESIGN DECISION: A fixed list tuned for a college student's budget
    keeps category breakdowns comparable month over month.
    """
    FOOD = "food"
    TRANSPORT = "transport"
    ENTERTAINMENT = "entertainment"
    STUDY = "study"
    MESS = "mess"
    OTHER = "other"


class DebtType(str, Enum):
    """Direction of an informal debt with a friend."""
    OWE = "owe"    # user owes the friend
    OWED = "owed"  # friend owes the user


class ReminderStatus(str, Enum):
    """Payment reminder status."""
    PENDING = "pending"
    PAID = "paid"
    SNOOZED = "snoozed"


# =============================================================================
# STORED ENTITIES
# =============================================================================

class Account(BaseModel):
    """
    A named balance bucket.

    CRITICAL: balance is only ever changed by the balance maintenance
    rule when a transaction is posted. Clients never set it directly.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType = AccountType.MAIN
    balance: Money = Decimal("0.00")
    created_at: LocalDateTime


class Transaction(BaseModel):
    """A single income or expense event posted against one account."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str
    account_id: str
    type: TransactionType
    amount: PositiveMoney
    description: str
    category: Category
    created_at: LocalDateTime

    @property
    def signed_amount(self) -> Decimal:
        """Amount with the direction applied (income positive)."""
        return self.amount if self.type == TransactionType.INCOME else -self.amount


class Debt(BaseModel):
    """An informal IOU between the user and a named friend."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str
    friend_name: str = Field(..., min_length=1, max_length=100)
    type: DebtType
    amount: PositiveMoney
    description: str
    settled: bool = False
    created_at: LocalDateTime


class Reminder(BaseModel):
    """A scheduled, optionally recurring, payment obligation."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    amount: PositiveMoney
    due_date: LocalDateTime
    status: ReminderStatus = ReminderStatus.PENDING
    recurring: bool = False
    created_at: LocalDateTime


class ChatMessage(BaseModel):
    """One message in the assistant conversation."""

    id: str
    content: str
    is_user: bool
    created_at: LocalDateTime


# =============================================================================
# CREATE PAYLOADS
# =============================================================================
# These omit id and created_at, which the store always assigns.

class AccountCreate(BaseModel):
    """Payload for opening a new account."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType = AccountType.MAIN
    balance: Money = Field(
        default=Decimal("0.00"),
        description="Opening balance"
    )


class TransactionCreate(BaseModel):
    """Payload for posting a transaction."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    account_id: str = Field(..., min_length=1)
    type: TransactionType
    amount: PositiveMoney
    description: str = Field(..., min_length=1, max_length=500)
    category: Category


class DebtCreate(BaseModel):
    """
    Payload for recording a debt.

    settled is deliberately absent: every debt starts unsettled.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    friend_name: str = Field(..., min_length=1, max_length=100)
    type: DebtType
    amount: PositiveMoney
    description: str = Field(..., min_length=1, max_length=500)


class ReminderCreate(BaseModel):
    """Payload for scheduling a reminder."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=500)
    amount: PositiveMoney
    due_date: LocalDateTime
    status: ReminderStatus = ReminderStatus.PENDING
    recurring: bool = False


class ChatMessageCreate(BaseModel):
    """Payload for a chat message."""
    model_config = ConfigDict(extra="forbid")

    content: str = Field(..., min_length=1, max_length=4000)
    is_user: bool


# =============================================================================
# UPDATE VARIANTS
# =============================================================================
# DESIGN DECISION: Updates are explicit, typed variants instead of an
# arbitrary partial dict, so illegal field combinations cannot reach the
# store. The partial variants forbid unknown fields and never expose id,
# created_at or (for accounts) balance.

class SetDebtSettled(BaseModel):
    """Mark a debt settled (or reopen it)."""
    settled: bool = True


class DebtUpdate(BaseModel):
    """Schema-checked partial edit of a debt."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")
    nullable_fields: ClassVar[frozenset] = frozenset()

    friend_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[DebtType] = None
    amount: Optional[PositiveMoney] = None
    description: Optional[str] = Field(default=None, min_length=1, max_length=500)
    settled: Optional[bool] = None

    @field_validator("*")
    @classmethod
    def reject_explicit_null(cls, value, info):
        return reject_null(cls, value, info.field_name)


class SetReminderStatus(BaseModel):
    """Change a reminder's status, e.g. mark it paid."""
    status: ReminderStatus


class SetReminderDueDate(BaseModel):
    """Move a reminder's due date, optionally changing its status too."""
    due_date: LocalDateTime
    status: Optional[ReminderStatus] = None


class SetReminderRecurring(BaseModel):
    """Toggle whether a reminder repeats."""
    recurring: bool


class ReminderUpdate(BaseModel):
    """Schema-checked partial edit of a reminder."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")
    nullable_fields: ClassVar[frozenset] = frozenset({"description"})

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=500)
    amount: Optional[PositiveMoney] = None
    due_date: Optional[LocalDateTime] = None
    status: Optional[ReminderStatus] = None
    recurring: Optional[bool] = None

    @field_validator("*")
    @classmethod
    def reject_explicit_null(cls, value, info):
        return reject_null(cls, value, info.field_name)


DebtChange = Union[SetDebtSettled, DebtUpdate]
ReminderChange = Union[
    SetReminderStatus,
    SetReminderDueDate,
    SetReminderRecurring,
    ReminderUpdate,
]


# =============================================================================
# QUERY AND SUMMARY MODELS
# =============================================================================

class TransactionFilter(BaseModel):
    """Optional filters for listing transactions. Date bounds are inclusive."""

    account_id: Optional[str] = None
    category: Optional[Category] = None
    start_date: Optional[LocalDateTime] = None
    end_date: Optional[LocalDateTime] = None


class LedgerSnapshot(BaseModel):
    """
    A consistent copy of every collection, taken under one lock.

    Collections are already in their list order.
    """

    taken_at: LocalDateTime
    accounts: list[Account] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)
    debts: list[Debt] = Field(default_factory=list)
    reminders: list[Reminder] = Field(default_factory=list)
    chat_messages: list[ChatMessage] = Field(default_factory=list)


class NetDebt(BaseModel):
    """Unsettled debt totals in each direction."""

    total_owed: Money = Decimal("0.00")
    total_owed_to_user: Money = Decimal("0.00")

    @property
    def net(self) -> Decimal:
        """Positive when friends owe the user more than the user owes."""
        return self.total_owed_to_user - self.total_owed


class FinancialSummary(BaseModel):
    """
    The aggregate bundle served in one call to the dashboard and
    handed to the assistant as read-only context.
    """

    generated_at: LocalDateTime
    total_balance: Money
    monthly_spent: Money
    category_spending: dict[Category, Money] = Field(default_factory=dict)
    total_owed: Money
    total_owed_to_user: Money
    recent_transactions: list[Transaction] = Field(default_factory=list)
    upcoming_reminders: list[Reminder] = Field(default_factory=list)
    active_debts: list[Debt] = Field(default_factory=list)


class SpendingInsights(BaseModel):
    """AI-generated commentary on this month's spending."""

    insights: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    monthly_trend: str = "No trend data available"


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found at the boundary."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'past_due_date')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage payload validation.

    Stage 1: Schema validation (types, required fields, enums)
    Stage 2: Semantic validation (suspicious but legal values)
    """

    entity_type: str = Field(
        ...,
        description="Kind of payload validated (e.g., 'transaction')"
    )
    schema_valid: bool
    semantic_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.schema_valid and self.semantic_valid

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "warning"]
