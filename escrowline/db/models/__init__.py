from escrowline.db.models.dispute import Dispute
from escrowline.db.models.escrow_hold import EscrowHold
from escrowline.db.models.ledger import LedgerEntry
from escrowline.db.models.notification import Notification
from escrowline.db.models.order import Order
from escrowline.db.models.seller import Seller, SellerBalance

__all__ = [
    "Dispute",
    "EscrowHold",
    "LedgerEntry",
    "Notification",
    "Order",
    "Seller",
    "SellerBalance",
]
