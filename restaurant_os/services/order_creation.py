"""
Order creation

Validates a checkout request, prices it from the menu, and writes the order,
its items, the delivery address, the first history row, promo usage and the
customer's totals in one transaction. Payment is a separate step.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
import secrets
import string
import uuid

from sqlalchemy import func, or_, update
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession
import structlog

from restaurant_os.core.dependencies import CurrentUser
from restaurant_os.core.events import OrderCreated, event_bus
from restaurant_os.core.exceptions import (
    AuthorizationError, NotFoundError, OrderValidationError
)
from restaurant_os.models.customer import Address, Customer
from restaurant_os.models.customization import CustomizationGroup, CustomizationOption
from restaurant_os.models.menu_item import MenuItem
from restaurant_os.models.order import Order, OrderStatus, OrderType
from restaurant_os.models.order_item import OrderItem
from restaurant_os.models.order_status_history import OrderStatusHistory
from restaurant_os.models.promo_code import PromoCode
from restaurant_os.models.restaurant import Restaurant
from restaurant_os.schemas.orders import OrderCreate
from restaurant_os.services.customer_stats import count_order
from restaurant_os.services.order_status import get_order
from restaurant_os.services.pricing import line_total, price_order, unit_price

logger = structlog.get_logger(__name__)

ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits
ORDER_NUMBER_ATTEMPTS = 5
ORDER_PLACED_NOTE = "Order placed"


def generate_order_number(now: Optional[datetime] = None) -> str:
    """ORD-YYYYMMDD-XXXXXX"""
    now = now or datetime.utcnow()
    suffix = "".join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(6))
    return f"ORD-{now:%Y%m%d}-{suffix}"


async def _unique_order_number(session: AsyncSession) -> str:
    for _ in range(ORDER_NUMBER_ATTEMPTS):
        candidate = generate_order_number()
        result = await session.exec(select(Order.id).where(Order.order_number == candidate))
        if result.first() is None:
            return candidate
    raise RuntimeError("Could not generate a unique order number")


def _fulfillment_errors(request: OrderCreate, restaurant: Restaurant) -> List[Dict[str, str]]:
    errors: List[Dict[str, str]] = []
    enabled = {
        OrderType.DINE_IN: restaurant.enable_dine_in,
        OrderType.PICKUP: restaurant.enable_pickup,
        OrderType.DELIVERY: restaurant.enable_delivery,
    }
    if not enabled[request.order_type]:
        errors.append({
            "field": "order_type",
            "message": f"{request.order_type.value} orders are not available at this restaurant",
        })

    if request.order_type == OrderType.DINE_IN and not (request.table_number or "").strip():
        errors.append({"field": "table_number", "message": "Table number is required for dine-in orders"})

    elif request.order_type == OrderType.PICKUP and request.pickup_time is None:
        errors.append({"field": "pickup_time", "message": "Pickup time is required for pickup orders"})

    elif request.order_type == OrderType.DELIVERY:
        address = request.delivery_address
        for name in ("street", "city", "state", "zip_code"):
            value = getattr(address, name, None) if address else None
            if not (value or "").strip():
                errors.append({
                    "field": f"delivery_address.{name}",
                    "message": f"{name.replace('_', ' ').capitalize()} is required for delivery orders",
                })
        if not (request.phone or "").strip():
            errors.append({"field": "phone", "message": "Phone number is required for delivery orders"})

    return errors


async def _load_menu_items(
    session: AsyncSession,
    request: OrderCreate,
    restaurant: Restaurant,
    errors: List[Dict[str, str]]
) -> Dict[uuid.UUID, MenuItem]:
    if not request.items:
        errors.append({"field": "items", "message": "Order must contain at least one item"})
        return {}

    ids = {line.menu_item_id for line in request.items}
    result = await session.exec(
        select(MenuItem).where(MenuItem.id.in_(list(ids)), MenuItem.restaurant_id == restaurant.id)
    )
    menu = {item.id: item for item in result.all()}

    requested: Dict[uuid.UUID, int] = {}
    for index, line in enumerate(request.items):
        field = f"items.{index}"
        item = menu.get(line.menu_item_id)
        if item is None:
            errors.append({"field": f"{field}.menu_item_id", "message": "Menu item not found"})
            continue
        if not item.is_available:
            errors.append({"field": f"{field}.menu_item_id", "message": f"{item.name} is not available"})
        if line.quantity < 1:
            errors.append({"field": f"{field}.quantity", "message": "Quantity must be at least 1"})
            continue
        requested[item.id] = requested.get(item.id, 0) + line.quantity

    for item_id, quantity in requested.items():
        item = menu[item_id]
        if not item.has_stock_for(quantity):
            errors.append({
                "field": "items",
                "message": f"Only {item.stock_quantity} of {item.name} left in stock",
            })
    return menu


async def _load_customizations(
    session: AsyncSession,
    request: OrderCreate,
    menu: Dict[uuid.UUID, MenuItem],
    errors: List[Dict[str, str]]
) -> Dict[int, List[Tuple[CustomizationGroup, CustomizationOption]]]:
    """Resolve each line's option ids against that item's catalog, keyed by line index"""
    if not menu:
        return {}

    result = await session.exec(
        select(CustomizationGroup).where(CustomizationGroup.menu_item_id.in_(list(menu)))
    )
    groups_by_item: Dict[uuid.UUID, List[CustomizationGroup]] = {}
    for group in result.all():
        groups_by_item.setdefault(group.menu_item_id, []).append(group)

    chosen: Dict[int, List[Tuple[CustomizationGroup, CustomizationOption]]] = {}
    for index, line in enumerate(request.items):
        item = menu.get(line.menu_item_id)
        if item is None:
            continue
        groups = groups_by_item.get(item.id, [])
        offered = {option.id: (group, option) for group in groups for option in group.options}

        selected: List[Tuple[CustomizationGroup, CustomizationOption]] = []
        for position, selection in enumerate(line.customizations):
            field = f"items.{index}.customizations.{position}.option_id"
            match = offered.get(selection.option_id)
            if match is None:
                errors.append({"field": field, "message": f"Customization is not offered for {item.name}"})
                continue
            group, option = match
            if not option.is_available:
                errors.append({"field": field, "message": f"{option.name} is not available"})
                continue
            if any(existing.id == option.id for _, existing in selected):
                errors.append({"field": field, "message": f"{option.name} was selected more than once"})
                continue
            selected.append((group, option))

        for group in groups:
            count = sum(1 for chosen_group, _ in selected if chosen_group.id == group.id)
            if group.is_required and count == 0:
                errors.append({
                    "field": f"items.{index}.customizations",
                    "message": f"{group.name} is required for {item.name}",
                })
            elif count > group.max_selections:
                errors.append({
                    "field": f"items.{index}.customizations",
                    "message": f"Choose at most {group.max_selections} from {group.name}",
                })
        chosen[index] = selected
    return chosen


async def _find_promo(session: AsyncSession, restaurant: Restaurant, code: str) -> PromoCode:
    result = await session.exec(
        select(PromoCode).where(
            PromoCode.restaurant_id == restaurant.id,
            func.upper(PromoCode.code) == code.strip().upper(),
        )
    )
    promo = result.first()
    if promo is None:
        raise OrderValidationError.for_field("promo_code", "Promo code not found")
    return promo


async def _claim_promo_use(session: AsyncSession, promo: PromoCode) -> None:
    """Conditional increment so concurrent checkouts cannot exceed usage_limit"""
    outcome = await session.execute(
        update(PromoCode)
        .where(
            PromoCode.id == promo.id,
            or_(PromoCode.usage_limit.is_(None), PromoCode.usage_count < PromoCode.usage_limit),
        )
        .values(usage_count=PromoCode.usage_count + 1)
    )
    if outcome.rowcount != 1:
        raise OrderValidationError.for_field("promo_code", "Promo code usage limit reached")


async def _resolve_customer(
    session: AsyncSession,
    request: OrderCreate,
    restaurant: Restaurant,
    actor: CurrentUser
) -> Customer:
    if not actor.is_staff:
        try:
            customer_id = uuid.UUID(actor.id)
        except ValueError:
            raise AuthorizationError("Customer profile not found for this restaurant")
        customer = await session.get(Customer, customer_id)
        if customer is None or customer.restaurant_id != restaurant.id:
            raise AuthorizationError("Customer profile not found for this restaurant")
        return customer

    # Staff order on behalf of a guest
    contact = request.customer
    if contact is None:
        raise OrderValidationError.for_field("customer", "Customer details are required for staff orders")
    email = contact.email.strip().lower()
    result = await session.exec(
        select(Customer).where(Customer.restaurant_id == restaurant.id, Customer.email == email)
    )
    customer = result.first()
    if customer is None:
        customer = Customer(
            restaurant_id=restaurant.id,
            email=email,
            name=contact.name,
            phone=contact.phone,
            is_guest=True,
        )
        session.add(customer)
        await session.flush()
    return customer


async def create_order(session: AsyncSession, request: OrderCreate, actor: CurrentUser) -> Order:
    """
    Create a PENDING order from a checkout request.

    Raises NotFoundError for an unknown restaurant, OrderValidationError with
    one detail per offending field, or AuthorizationError when a customer
    orders without a profile at this restaurant. No partial order is ever
    left behind.
    """
    try:
        restaurant = await session.get(Restaurant, request.restaurant_id)
        if restaurant is None or not restaurant.is_active:
            raise NotFoundError("Restaurant not found")

        errors = _fulfillment_errors(request, restaurant)
        menu = await _load_menu_items(session, request, restaurant, errors)
        chosen = await _load_customizations(session, request, menu, errors)
        if errors:
            raise OrderValidationError("Validation failed", details=errors)

        customer = await _resolve_customer(session, request, restaurant, actor)

        # Price every line from the menu
        order_items: List[OrderItem] = []
        for index, line in enumerate(request.items):
            item = menu[line.menu_item_id]
            options = chosen.get(index, [])
            customizations = [
                {"option_id": str(option.id), "group": group.name, "name": option.name, "price": str(option.price_modifier)}
                for group, option in options
            ]
            price = unit_price(item.price, (option.price_modifier for _, option in options))
            order_items.append(
                OrderItem(
                    menu_item_id=item.id,
                    name=item.name,
                    price=price,
                    quantity=line.quantity,
                    line_total=line_total(price, line.quantity),
                    customizations=customizations or None,
                    special_instructions=line.special_instructions,
                )
            )

        subtotal_preview = sum((i.line_total for i in order_items), Decimal("0.00"))
        if subtotal_preview < restaurant.min_order_value:
            raise OrderValidationError.for_field(
                "items",
                f"Minimum order value is {restaurant.min_order_value}"
            )

        promo: Optional[PromoCode] = None
        discount = Decimal("0.00")
        if request.promo_code and request.promo_code.strip():
            promo = await _find_promo(session, restaurant, request.promo_code)
            applicable, reason = promo.check_applicable(subtotal_preview)
            if not applicable:
                raise OrderValidationError.for_field("promo_code", reason)
            discount = promo.discount_for(subtotal_preview)

        breakdown = price_order(
            (i.line_total for i in order_items),
            tax_rate=restaurant.tax_rate,
            service_fee_rate=restaurant.service_fee_rate,
            delivery_fee=restaurant.delivery_fee if request.order_type == OrderType.DELIVERY else Decimal("0.00"),
            tip_amount=request.tip_amount,
            discount_amount=discount,
        )

        address_id: Optional[uuid.UUID] = None
        if request.order_type == OrderType.DELIVERY:
            address = Address(
                customer_id=customer.id,
                street=request.delivery_address.street.strip(),
                city=request.delivery_address.city.strip(),
                state=request.delivery_address.state.strip(),
                zip_code=request.delivery_address.zip_code.strip(),
                country=request.delivery_address.country,
            )
            session.add(address)
            await session.flush()
            address_id = address.id

        order = Order(
            order_number=await _unique_order_number(session),
            restaurant_id=restaurant.id,
            customer_id=customer.id,
            order_type=request.order_type,
            status=OrderStatus.PENDING,
            table_number=request.table_number if request.order_type == OrderType.DINE_IN else None,
            pickup_time=request.pickup_time if request.order_type == OrderType.PICKUP else None,
            delivery_address_id=address_id,
            contact_phone=request.phone or customer.phone,
            special_instructions=request.special_instructions,
            subtotal=breakdown.subtotal,
            tax_amount=breakdown.tax_amount,
            service_fee=breakdown.service_fee,
            tip_amount=breakdown.tip_amount,
            discount_amount=breakdown.discount_amount,
            delivery_fee=breakdown.delivery_fee,
            payment_method=request.payment_method,
            promo_code_id=promo.id if promo else None,
        )
        order.calculate_total()
        order.items = order_items
        order.history = [
            OrderStatusHistory(status=OrderStatus.PENDING, note=ORDER_PLACED_NOTE, created_by=actor.id)
        ]
        session.add(order)

        if promo is not None:
            await _claim_promo_use(session, promo)

        await session.flush()
        await count_order(session, order)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(
        "Order created",
        order_id=str(order.id),
        order_number=order.order_number,
        restaurant_id=str(order.restaurant_id),
        total_amount=str(order.total_amount),
        client_total=str(request.client_total) if request.client_total is not None else None,
    )
    event_bus.publish_nowait(
        OrderCreated(
            order_id=order.id,
            order_number=order.order_number,
            restaurant_id=order.restaurant_id,
            customer_id=order.customer_id,
            total_amount=order.total_amount,
        )
    )
    return await get_order(session, order.id)
