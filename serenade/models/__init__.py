"""
ORM models. Importing this package registers every table on Base.metadata.
"""
from serenade.models.audit_log import AuditLog
from serenade.models.bundle import Bundle
from serenade.models.customization import Customization, CustomizationTweak
from serenade.models.email_preferences import EmailPreferences
from serenade.models.failed_job import FailedJob
from serenade.models.order import Order
from serenade.models.song_variant import SongVariant
from serenade.models.user import User

__all__ = [
    "AuditLog",
    "Bundle",
    "Customization",
    "CustomizationTweak",
    "EmailPreferences",
    "FailedJob",
    "Order",
    "SongVariant",
    "User",
]
