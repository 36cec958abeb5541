# Services module

from restocore.services.cart_service import CartService
from restocore.services.order_service import OrderService, calculate_totals
from restocore.services.payment_ledger_service import PaymentLedgerService, PaymentResult
from restocore.services.bill_split_service import (
    BillSplit,
    BillSplitService,
    compute_equal_split,
    validate_custom_split,
)
from restocore.services.discount_policy import authorize_discount, authorize_discount_removal
from restocore.services.notification_service import OrderNotifier, order_notifier
