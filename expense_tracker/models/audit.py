"""
Audit Models for Expense Tracker

Every mutation of the ledger is logged for audit purposes.
This provides:
1. Traceability of every balance change
2. Debugging information when things go wrong
3. A record of the known balance quirk on transaction deletion

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every ledger mutation and every assistant call has its own event type.
    """
    # Accounts and transactions
    ACCOUNT_CREATED = "account_created"
    TRANSACTION_POSTED = "transaction_posted"
    BALANCE_ADJUSTED = "balance_adjusted"
    TRANSACTION_DELETED = "transaction_deleted"

    # Debts
    DEBT_CREATED = "debt_created"
    DEBT_UPDATED = "debt_updated"
    DEBT_SETTLED = "debt_settled"
    DEBT_DELETED = "debt_deleted"

    # Reminders
    REMINDER_CREATED = "reminder_created"
    REMINDER_UPDATED = "reminder_updated"
    REMINDER_SNOOZED = "reminder_snoozed"
    REMINDER_DELETED = "reminder_deleted"

    # Chat
    CHAT_MESSAGE_STORED = "chat_message_stored"
    CHAT_CLEARED = "chat_cleared"
    ASSISTANT_RESPONSE_GENERATED = "assistant_response_generated"

    # Validation
    VALIDATION_FAILED = "validation_failed"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every ledger mutation creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'transaction', 'debt')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., a posting and its balance change)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_posted(txn_id, account_id, ...)
        event = AuditEventBuilder.debt_settled(debt_id, friend, amount, correlation_id)
    """

    @staticmethod
    def account_created(
        account_id: str,
        name: str,
        opening_balance: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_CREATED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Account opened: {name}",
            details={
                "name": name,
                "opening_balance": opening_balance,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_posted(
        transaction_id: str,
        account_id: str,
        transaction_type: str,
        amount: str,
        category: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_POSTED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction posted: {transaction_type} of {amount} ({category})",
            details={
                "account_id": account_id,
                "type": transaction_type,
                "amount": amount,
                "category": category,
            },
            is_user_action=True,
        )

    @staticmethod
    def balance_adjusted(
        account_id: str,
        previous_balance: str,
        new_balance: str,
        transaction_id: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_ADJUSTED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Balance changed from {previous_balance} to {new_balance}",
            details={
                "previous_balance": previous_balance,
                "new_balance": new_balance,
                "transaction_id": transaction_id,
            },
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: str,
        balance_reversed: bool,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        # Without reversal the owning account keeps the deleted amount.
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            severity=AuditSeverity.INFO if balance_reversed else AuditSeverity.WARNING,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=(
                "Transaction deleted and balance reversed"
                if balance_reversed
                else "Transaction deleted; account balance NOT reversed"
            ),
            details={
                "balance_reversed": balance_reversed,
            },
            is_user_action=True,
        )

    @staticmethod
    def debt_created(
        debt_id: str,
        friend_name: str,
        debt_type: str,
        amount: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEBT_CREATED,
            entity_type="debt",
            entity_id=debt_id,
            correlation_id=correlation_id,
            description=f"Debt recorded with {friend_name}: {debt_type} {amount}",
            details={
                "friend_name": friend_name,
                "type": debt_type,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def debt_updated(
        debt_id: str,
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEBT_UPDATED,
            entity_type="debt",
            entity_id=debt_id,
            correlation_id=correlation_id,
            description=f"Debt updated: {', '.join(changed_fields) or 'no fields'}",
            details={
                "changed_fields": changed_fields,
            },
            is_user_action=True,
        )

    @staticmethod
    def debt_settled(
        debt_id: str,
        friend_name: str,
        amount: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEBT_SETTLED,
            entity_type="debt",
            entity_id=debt_id,
            correlation_id=correlation_id,
            description=f"Debt settled with {friend_name}: {amount}",
            details={
                "friend_name": friend_name,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def reminder_created(
        reminder_id: str,
        title: str,
        due_date: datetime,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMINDER_CREATED,
            entity_type="reminder",
            entity_id=reminder_id,
            correlation_id=correlation_id,
            description=f"Reminder scheduled: {title}",
            details={
                "title": title,
                "due_date": due_date.isoformat(),
            },
            is_user_action=True,
        )

    @staticmethod
    def reminder_updated(
        reminder_id: str,
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMINDER_UPDATED,
            entity_type="reminder",
            entity_id=reminder_id,
            correlation_id=correlation_id,
            description=f"Reminder updated: {', '.join(changed_fields) or 'no fields'}",
            details={
                "changed_fields": changed_fields,
            },
            is_user_action=True,
        )

    @staticmethod
    def reminder_snoozed(
        reminder_id: str,
        new_due_date: datetime,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMINDER_SNOOZED,
            entity_type="reminder",
            entity_id=reminder_id,
            correlation_id=correlation_id,
            description=f"Reminder snoozed until {new_due_date.date().isoformat()}",
            details={
                "new_due_date": new_due_date.isoformat(),
            },
            is_user_action=True,
        )

    @staticmethod
    def entity_deleted(
        entity_type: str,
        entity_id: str,
        existed: bool,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        event_type = (
            AuditEventType.DEBT_DELETED
            if entity_type == "debt"
            else AuditEventType.REMINDER_DELETED
        )
        return AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=(
                f"{entity_type.capitalize()} deleted"
                if existed
                else f"{entity_type.capitalize()} already absent"
            ),
            details={
                "existed": existed,
            },
            is_user_action=True,
        )

    @staticmethod
    def chat_message_stored(
        message_id: str,
        is_user: bool,
        length: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CHAT_MESSAGE_STORED,
            entity_type="chat_message",
            entity_id=message_id,
            correlation_id=correlation_id,
            description="User message stored" if is_user else "Assistant message stored",
            details={
                "is_user": is_user,
                "length": length,
            },
            is_user_action=is_user,
        )

    @staticmethod
    def chat_cleared(
        removed: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CHAT_CLEARED,
            entity_type="chat_message",
            correlation_id=correlation_id,
            description=f"Chat history cleared ({removed} messages)",
            details={
                "removed": removed,
            },
            is_user_action=True,
        )

    @staticmethod
    def assistant_response_generated(
        model_name: str,
        response_length: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ASSISTANT_RESPONSE_GENERATED,
            entity_type="chat_message",
            correlation_id=correlation_id,
            description=f"Assistant replied using {model_name}",
            details={
                "model_name": model_name,
                "response_length": response_length,
            },
        )

    @staticmethod
    def validation_failed(
        entity_type: str,
        stage: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            correlation_id=correlation_id,
            description=f"{stage.capitalize()} validation failed with {len(issues)} issues",
            details={
                "stage": stage,
                "issues": issues,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_code=error_type,
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
