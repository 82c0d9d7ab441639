"""
Audit logging for admin actions

Records who did what and when to the structured "audit" logger.
"""
import logging
from datetime import datetime, timezone
from typing import Optional, Any

from bookstore.core.config import settings

audit_logger = logging.getLogger("audit")
audit_logger.setLevel(logging.INFO)

# Action categories
ACTION_USER_ROLE_CHANGE = "user.role_change"
ACTION_USER_STATUS_CHANGE = "user.status_change"
ACTION_USER_DELETE = "user.delete"
ACTION_SUBSCRIPTION_STATUS_OVERRIDE = "subscription.status_override"
ACTION_SUBSCRIPTION_EXTEND = "subscription.extend"
ACTION_SUBSCRIPTION_DELETE = "subscription.delete"
ACTION_SUBSCRIPTION_BULK = "subscription.bulk"

SENSITIVE_KEYS = ("password", "secret", "token", "key", "credential")


def log_admin_action(
    action: str,
    user_id: Optional[int],
    user_email: str,
    resource_type: str,
    resource_id: Optional[Any] = None,
    details: Optional[dict] = None,
    ip_address: Optional[str] = None,
    success: bool = True,
):
    """
    Log an administrative action.

    Args:
        action: Action identifier (e.g., "subscription.extend")
        user_id: ID of the admin performing the action
        user_email: Email of the admin
        resource_type: Type of resource affected (e.g., "subscription", "user")
        resource_id: ID of the affected resource (if applicable)
        details: Additional context about the action
        ip_address: IP address of the request
        success: Whether the action succeeded
    """
    log_entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "action": action,
        "admin_id": user_id,
        "admin_email": user_email,
        "resource_type": resource_type,
        "resource_id": str(resource_id) if resource_id is not None else None,
        "success": success,
        "ip_address": ip_address,
        "environment": settings.ENVIRONMENT,
    }

    if details:
        log_entry["details"] = {
            k: v for k, v in details.items()
            if k.lower() not in SENSITIVE_KEYS
        }

    if success:
        audit_logger.info(
            f"AUDIT: {action} by {user_email} on {resource_type}/{resource_id}",
            extra={"audit": log_entry}
        )
    else:
        audit_logger.warning(
            f"AUDIT FAILED: {action} by {user_email} on {resource_type}/{resource_id}",
            extra={"audit": log_entry}
        )
