from restaurant_os.models.restaurant import Restaurant
from restaurant_os.models.customer import Customer, Address
from restaurant_os.models.menu_item import MenuItem
from restaurant_os.models.customization import CustomizationGroup, CustomizationOption
from restaurant_os.models.promo_code import PromoCode, DiscountType
from restaurant_os.models.order import (
    Order, OrderStatus, OrderType, PaymentMethod, PaymentStatus,
    TERMINAL_STATUSES, REVERSING_STATUSES, CUSTOMER_CANCELLABLE_STATUSES
)
from restaurant_os.models.order_item import OrderItem
from restaurant_os.models.order_status_history import (
    OrderStatusHistory, SYSTEM_ACTOR
)
from restaurant_os.models.webhook_log import WebhookLog, WebhookOutcome
