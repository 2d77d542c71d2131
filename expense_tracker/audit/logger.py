"""
Audit Logger

DESIGN DECISION: Every ledger mutation is logged.
This provides:
1. Traceability of every balance change
2. Debugging capability
3. A visible record each time a deleted transaction leaves its
   amount behind in the account balance

The audit logger:
- Gracefully handles failures (never fails a ledger operation)
- Supports correlation IDs to trace the events of one action
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

import structlog

from expense_tracker.models.audit import AuditEvent, AuditEventBuilder
from expense_tracker.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store (for history), when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for the audit trail.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("expense_tracker.audit")

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_account_created(
        self,
        account_id: str,
        name: str,
        opening_balance: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.account_created(
            account_id=account_id,
            name=name,
            opening_balance=opening_balance,
            correlation_id=correlation_id,
        ))

    async def log_transaction_posted(
        self,
        transaction_id: str,
        account_id: str,
        transaction_type: str,
        amount: str,
        category: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a posted transaction."""
        await self.log(AuditEventBuilder.transaction_posted(
            transaction_id=transaction_id,
            account_id=account_id,
            transaction_type=transaction_type,
            amount=amount,
            category=category,
            correlation_id=correlation_id,
        ))

    async def log_balance_adjusted(
        self,
        account_id: str,
        previous_balance: str,
        new_balance: str,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log the balance change caused by a posting."""
        await self.log(AuditEventBuilder.balance_adjusted(
            account_id=account_id,
            previous_balance=previous_balance,
            new_balance=new_balance,
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        ))

    async def log_transaction_deleted(
        self,
        transaction_id: str,
        balance_reversed: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            balance_reversed=balance_reversed,
            correlation_id=correlation_id,
        ))

    async def log_debt_created(
        self,
        debt_id: str,
        friend_name: str,
        debt_type: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.debt_created(
            debt_id=debt_id,
            friend_name=friend_name,
            debt_type=debt_type,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_debt_updated(
        self,
        debt_id: str,
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.debt_updated(
            debt_id=debt_id,
            changed_fields=changed_fields,
            correlation_id=correlation_id,
        ))

    async def log_debt_settled(
        self,
        debt_id: str,
        friend_name: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.debt_settled(
            debt_id=debt_id,
            friend_name=friend_name,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_reminder_created(
        self,
        reminder_id: str,
        title: str,
        due_date: datetime,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.reminder_created(
            reminder_id=reminder_id,
            title=title,
            due_date=due_date,
            correlation_id=correlation_id,
        ))

    async def log_reminder_updated(
        self,
        reminder_id: str,
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.reminder_updated(
            reminder_id=reminder_id,
            changed_fields=changed_fields,
            correlation_id=correlation_id,
        ))

    async def log_reminder_snoozed(
        self,
        reminder_id: str,
        new_due_date: datetime,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.reminder_snoozed(
            reminder_id=reminder_id,
            new_due_date=new_due_date,
            correlation_id=correlation_id,
        ))

    async def log_entity_deleted(
        self,
        entity_type: str,
        entity_id: str,
        existed: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a debt or reminder deletion (including no-op deletes)."""
        await self.log(AuditEventBuilder.entity_deleted(
            entity_type=entity_type,
            entity_id=entity_id,
            existed=existed,
            correlation_id=correlation_id,
        ))

    async def log_chat_message_stored(
        self,
        message_id: str,
        is_user: bool,
        length: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.chat_message_stored(
            message_id=message_id,
            is_user=is_user,
            length=length,
            correlation_id=correlation_id,
        ))

    async def log_chat_cleared(
        self,
        removed: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.chat_cleared(
            removed=removed,
            correlation_id=correlation_id,
        ))

    async def log_assistant_response(
        self,
        model_name: str,
        response_length: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.assistant_response_generated(
            model_name=model_name,
            response_length=response_length,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        entity_type: str,
        stage: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a rejected payload."""
        await self.log(AuditEventBuilder.validation_failed(
            entity_type=entity_type,
            stage=stage,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (e.g., posting an expense).
    Pass it through all subsequent operations.
    """
    return uuid4()
