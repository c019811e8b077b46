"""
Notification Service
Queues in-app notifications for the delivery collaborator.

Rows are added to the caller's session and committed with the caller's
transaction, so a rolled-back settlement never leaves a notification behind.
"""

import logging

from sqlalchemy.orm import Session

from ..models import Notification

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = ("info", "success", "warning")


def queue_notification(
    db: Session,
    user_id: int,
    title: str,
    message: str,
    notification_type: str = "info",
) -> Notification:
    """
    Add a notification for a user to the current transaction.

    Args:
        db: Database session (not committed here)
        user_id: Recipient user ID
        title: Short title shown in the inbox
        message: Notification body
        notification_type: info, success or warning

    Returns:
        The pending Notification row
    """
    if notification_type not in NOTIFICATION_TYPES:
        logger.warning(f"Unknown notification type '{notification_type}', using info")
        notification_type = "info"

    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=notification_type,
    )
    db.add(notification)
    logger.info(f"Queued {notification_type} notification for user {user_id}: {title}")
    return notification
