"""
Two-Stage Payload Validation

DESIGN DECISION: Validation happens at the boundary, before anything
reaches the store, in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence
- Type checking and enum membership
- Positive amounts, decimal parsing
- Failure raises ValidationError; nothing reaches the store

STAGE 2 - SEMANTIC VALIDATION:
- Reminder due dates already in the past
- Amounts above the configured sanity threshold
- These are WARNINGS only. The payload is legal, so it proceeds.

WHY NOT CHECK account_id HERE:
An account can disappear between validation and posting in a
multi-writer backend. The store checks it inside its critical section
and raises NotFoundError, so the all-or-nothing rule lives in one place.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them.
"""

from datetime import datetime
from typing import Any, Callable, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError as SchemaError

from expense_tracker.config import LedgerSettings
from expense_tracker.models.ledger import (
    AccountCreate,
    ChatMessageCreate,
    DebtCreate,
    DebtUpdate,
    ReminderCreate,
    ReminderUpdate,
    TransactionCreate,
    ValidationIssue,
    ValidationResult,
    ensure_aware,
)


ModelT = TypeVar("ModelT", bound=BaseModel)

Payload = Union[dict[str, Any], BaseModel]


class ValidationError(Exception):
    """
    A payload failed schema validation.

    The full ValidationResult is attached for the caller to surface.
    """

    def __init__(self, result: ValidationResult):
        self.result = result
        errors = [i for i in result.issues if i.severity == "error"]
        summary = "; ".join(f"{i.field}: {i.message}" for i in errors[:3])
        super().__init__(f"Invalid {result.entity_type} data: {summary}")


def _local_now() -> datetime:
    return datetime.now().astimezone()


class LedgerValidator:
    """
    Validates raw payloads into typed create/update models.

    Stage 1: Schema validation (pydantic parsing)
    Stage 2: Semantic validation (warnings only)
    """

    def __init__(
        self,
        settings: Optional[LedgerSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize validator.

        Args:
            settings: Ledger settings for the amount threshold.
                     Defaults are used when None.
            clock: Source of "now" for due-date checks.
        """
        self._settings = settings or LedgerSettings()
        self._clock = clock or _local_now

    def _validate_schema(
        self,
        model_cls: Type[ModelT],
        payload: Payload,
    ) -> tuple[Optional[ModelT], list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (parsed_model_or_None, list_of_issues)
        """
        if isinstance(payload, model_cls):
            return payload, []
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(exclude_unset=True)
        if not isinstance(payload, dict):
            return None, [ValidationIssue(
                field="payload",
                issue_type="invalid_type",
                message=f"Expected an object, got {type(payload).__name__}",
                severity="error",
            )]

        try:
            return model_cls.model_validate(payload), []
        except SchemaError as e:
            issues = []
            for error in e.errors():
                field = ".".join(str(part) for part in error["loc"]) or "payload"
                issue_type = "missing" if error["type"] == "missing" else "invalid_value"
                issues.append(ValidationIssue(
                    field=field,
                    issue_type=issue_type,
                    message=error["msg"],
                    severity="error",
                ))
            return None, issues

    def _validate_semantic(self, model: BaseModel) -> list[ValidationIssue]:
        """
        Stage 2: Semantic validation.

        Checks:
        - Absurd amounts
        - Reminder due dates in the past

        Returns: list_of_issues (warnings only)
        """
        issues = []

        amount = getattr(model, "amount", None)
        if amount is not None and amount > self._settings.max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount {amount} is unusually large",
                severity="warning",
                suggested_fix="Please verify the amount is correct",
            ))

        due_date = getattr(model, "due_date", None)
        if due_date is not None and due_date < ensure_aware(self._clock()):
            issues.append(ValidationIssue(
                field="due_date",
                issue_type="past_due_date",
                message=f"Due date ({due_date.date().isoformat()}) is already in the past",
                severity="warning",
                suggested_fix="The reminder will not appear among upcoming reminders",
            ))

        return issues

    def validate(
        self,
        model_cls: Type[ModelT],
        payload: Payload,
        entity_type: str,
    ) -> tuple[ModelT, ValidationResult]:
        """
        Run both stages.

        Returns:
            (parsed_model, validation_result)

        Raises:
            ValidationError: If schema validation fails
        """
        model, issues = self._validate_schema(model_cls, payload)
        if model is None:
            raise ValidationError(ValidationResult(
                entity_type=entity_type,
                schema_valid=False,
                semantic_valid=False,
                issues=issues,
            ))

        issues.extend(self._validate_semantic(model))
        result = ValidationResult(
            entity_type=entity_type,
            schema_valid=True,
            semantic_valid=not any(i.severity == "error" for i in issues),
            issues=issues,
        )
        return model, result

    def validate_account(self, payload: Payload) -> tuple[AccountCreate, ValidationResult]:
        return self.validate(AccountCreate, payload, "account")

    def validate_transaction(self, payload: Payload) -> tuple[TransactionCreate, ValidationResult]:
        return self.validate(TransactionCreate, payload, "transaction")

    def validate_debt(self, payload: Payload) -> tuple[DebtCreate, ValidationResult]:
        return self.validate(DebtCreate, payload, "debt")

    def validate_debt_update(self, payload: Payload) -> tuple[DebtUpdate, ValidationResult]:
        return self.validate(DebtUpdate, payload, "debt")

    def validate_reminder(self, payload: Payload) -> tuple[ReminderCreate, ValidationResult]:
        return self.validate(ReminderCreate, payload, "reminder")

    def validate_reminder_update(self, payload: Payload) -> tuple[ReminderUpdate, ValidationResult]:
        return self.validate(ReminderUpdate, payload, "reminder")

    def validate_chat_message(self, payload: Payload) -> tuple[ChatMessageCreate, ValidationResult]:
        return self.validate(ChatMessageCreate, payload, "chat_message")

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Generate a user-friendly summary of validation results.

        Written for non-technical users.
        """
        if not result.issues:
            return "✅ Everything looks good."

        lines = []
        errors = [i for i in result.issues if i.severity == "error"]
        warnings = [i for i in result.issues if i.severity == "warning"]

        if errors:
            lines.append(f"❌ Please fix {len(errors)} problem(s):")
            for issue in errors:
                lines.append(f"  • {issue.field}: {issue.message}")

        if warnings:
            lines.append(f"⚠️ Please double-check {len(warnings)} item(s):")
            for issue in warnings:
                line = f"  • {issue.message}"
                if issue.suggested_fix:
                    line += f" ({issue.suggested_fix})"
                lines.append(line)

        return "\n".join(lines)
