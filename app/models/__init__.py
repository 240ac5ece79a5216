# Models package: importing it registers every table on Base.metadata

from .user import Role, User, UserSession
from .painter import Painter, PainterPaymentMethod, PainterStatus, VerificationStatus
from .lead import AccessSource, Lead, LeadAccess, LeadPayment, LeadStatus, PaymentStatus
from .bid import Bid, BidStatus
from .payment_config import PaymentConfigEntry
from .conversation import Conversation, Message

__all__ = [
    "Role",
    "User",
    "UserSession",
    "Painter",
    "PainterPaymentMethod",
    "PainterStatus",
    "VerificationStatus",
    "AccessSource",
    "Lead",
    "LeadAccess",
    "LeadPayment",
    "LeadStatus",
    "PaymentStatus",
    "Bid",
    "BidStatus",
    "PaymentConfigEntry",
    "Conversation",
    "Message",
]
