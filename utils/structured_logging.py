"""
Structured JSON logging for Drive sync operations.
Provides consistent logging format with required fields:
- service, action, status, file_id, table, owner
- error_type, error_message (in case of failure)
- Masks sensitive data (partial email addresses)
"""

import logging
import json
from datetime import datetime
from typing import Optional
import re


EMAIL_PATTERN = r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b'


def mask_email(email: Optional[str]) -> Optional[str]:
    """
    Partially mask an email address for privacy.
    Example: john.doe@example.com -> j***@example.com
    """
    if not email or '@' not in email:
        return email

    local, domain = email.split('@', 1)
    return f"{local[:1]}***@{domain}"


def mask_emails_in_text(text: str) -> str:
    """
    Find and mask all email addresses in a text string.
    """
    return re.sub(EMAIL_PATTERN, lambda match: mask_email(match.group(0)), text)


class StructuredLogger:
    """
    Structured logger for sync operations.
    Outputs JSON-formatted logs with consistent fields.
    """

    def __init__(self, service: str = "drive_sync", logger_name: str = "brify_sync.sync"):
        self.service = service
        self.logger = logging.getLogger(logger_name)

    def _log(
        self,
        level: int,
        action: str,
        status: str,
        message: str,
        file_id: Optional[str] = None,
        table: Optional[str] = None,
        owner: Optional[str] = None,
        error_type: Optional[str] = None,
        error_message: Optional[str] = None,
        mask_sensitive: bool = True,
        **extra_fields
    ):
        log_data = {
            "timestamp": datetime.now().astimezone().isoformat(),
            "service": self.service,
            "action": action,
            "status": status,
            "message": mask_emails_in_text(message) if mask_sensitive else message,
        }

        if file_id:
            log_data["file_id"] = file_id
        if table:
            log_data["table"] = table
        if owner:
            log_data["owner"] = mask_email(owner) if mask_sensitive else owner
        if error_type:
            log_data["error_type"] = error_type
        if error_message:
            log_data["error_message"] = mask_emails_in_text(error_message) if mask_sensitive else error_message

        for key, value in extra_fields.items():
            if isinstance(value, str) and mask_sensitive:
                log_data[key] = mask_emails_in_text(value)
            else:
                log_data[key] = value

        self.logger.log(level, json.dumps(log_data, default=str))

    def info(
        self,
        action: str,
        status: str = "success",
        message: str = "",
        file_id: Optional[str] = None,
        table: Optional[str] = None,
        owner: Optional[str] = None,
        **extra_fields
    ):
        """
        Log informational message.

        Args:
            action: The operation being performed (e.g., "detect", "apply", "ingest")
            status: Status of the operation (default: "success")
            message: Human-readable message
            file_id: Drive file or folder id
            table: Mirror table touched by the operation
            owner: Administrator e-mail (masked)
            **extra_fields: Additional fields to include in the log
        """
        self._log(
            logging.INFO,
            action=action,
            status=status,
            message=message,
            file_id=file_id,
            table=table,
            owner=owner,
            **extra_fields
        )

    def warning(
        self,
        action: str,
        status: str = "warning",
        message: str = "",
        file_id: Optional[str] = None,
        table: Optional[str] = None,
        owner: Optional[str] = None,
        **extra_fields
    ):
        """Log warning message."""
        self._log(
            logging.WARNING,
            action=action,
            status=status,
            message=message,
            file_id=file_id,
            table=table,
            owner=owner,
            **extra_fields
        )

    def error(
        self,
        action: str,
        message: str,
        error: Optional[Exception] = None,
        file_id: Optional[str] = None,
        table: Optional[str] = None,
        owner: Optional[str] = None,
        **extra_fields
    ):
        """
        Log error message.

        Args:
            action: The operation that failed
            message: Human-readable error message
            error: Exception object (if available)
            file_id: Drive file or folder id
            table: Mirror table touched by the operation
            owner: Administrator e-mail (masked)
            **extra_fields: Additional fields
        """
        error_type = None
        error_message = None

        if error:
            error_type = type(error).__name__
            error_message = str(error)

        self._log(
            logging.ERROR,
            action=action,
            status="error",
            message=message,
            file_id=file_id,
            table=table,
            owner=owner,
            error_type=error_type,
            error_message=error_message,
            **extra_fields
        )


# Singleton instance for sync logging
sync_logger = StructuredLogger(service="drive_sync")
