from enum import Enum

# ------------------ SOS ------------------
class SOSStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"
    FALSE_ALARM = "false_alarm"


class SOSPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TriggerSource(str, Enum):
    BUTTON = "button"
    VOICE = "voice"
    AUTO = "auto"
    MANUAL = "manual"

# ------------------ NOTIFICATIONS ------------------
class AlertMethod(str, Enum):
    SMS = "sms"
    EMAIL = "email"
    PUSH = "push"


class NotificationStatus(str, Enum):
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    READ = "read"

# ------------------ TRUSTED CONTACTS ------------------
class ContactRelationship(str, Enum):
    FAMILY = "family"
    FRIEND = "friend"
    COLLEAGUE = "colleague"
    NEIGHBOR = "neighbor"
    OTHER = "other"
