# apps/api/podcast_api/core/enums.py
"""
Shared enums for the Podcast Platform API
All string-based enums used across models, services and routers.
"""

from enum import Enum


class UserRole(str, Enum):
    USER = "user"
    HOST = "host"
    ADMIN = "admin"


class SubscriptionTier(str, Enum):
    """Denormalized tier cached on the user record"""
    FREE = "free"
    PREMIUM = "premium"


class SubscriptionStatus(str, Enum):
    """Subscription lifecycle states"""
    PENDING_PAYMENT = "pending_payment"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    PAYMENT_FAILED = "payment_failed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class PaymentGateway(str, Enum):
    STRIPE = "stripe"
    PAYPAL = "paypal"
    RAZORPAY = "razorpay"
    SQUARE = "square"


class PaymentPurpose(str, Enum):
    SUBSCRIPTION = "subscription"
    ONE_TIME = "one_time"
    UPGRADE = "upgrade"
    RENEWAL = "renewal"


class Currency(str, Enum):
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    INR = "INR"


class StreamPlatform(str, Enum):
    YOUTUBE = "youtube"
    TWITCH = "twitch"
    DISCORD = "discord"
    ZOOM = "zoom"
    TEAMS = "teams"
    OTHER = "other"


class SessionCategory(str, Enum):
    PODCAST = "podcast"
    INTERVIEW = "interview"
    PANEL = "panel"
    WORKSHOP = "workshop"
    QNA = "qna"
    OTHER = "other"


class AccessLevel(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"
    INVITE_ONLY = "invite_only"


class ParticipantRole(str, Enum):
    SPEAKER = "speaker"
    LISTENER = "listener"
    MODERATOR = "moderator"
