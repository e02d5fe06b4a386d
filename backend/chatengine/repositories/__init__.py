"""Data access layer."""
from .customer import CustomerRepository, CustomerConfigRepository
from .session import SessionRepository, MessageRepository
from .notification import NotificationRepository

__all__ = [
    "CustomerRepository",
    "CustomerConfigRepository",
    "SessionRepository",
    "MessageRepository",
    "NotificationRepository",
]
