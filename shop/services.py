import logging
from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import List

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from .errors import (
    ConflictError,
    FileTooLargeError,
    InsufficientPointsError,
    InsufficientStockError,
    InvalidFileTypeError,
    NotFoundError,
    ValidationError,
)
from .models import BIGINT_MAX, INT_MAX, Order, OrderItem, Product, User

logger = logging.getLogger(__name__)


# --- 1. Helpers ---

def _is_positive_int(value, limit=BIGINT_MAX):
    # bool is an int subclass, True must not pass as quantity 1
    return isinstance(value, int) and not isinstance(value, bool) and 0 < value <= limit


def points_for(total_price):
    """Loyalty points earned for an order total: one point per full 1000 units."""
    return total_price // settings.SHOP_POINTS_PER_AMOUNT


def check_upload(image):
    if image is None:
        return
    if getattr(image, "content_type", None) not in settings.SHOP_UPLOAD_CONTENT_TYPES:
        logger.warning("Upload %r rejected, content type %s", image.name, getattr(image, "content_type", None))
        raise InvalidFileTypeError()
    if image.size > settings.SHOP_MAX_UPLOAD_SIZE:
        raise FileTooLargeError()


def validate_line_items(line_items):
    """
    Normalizes ``[{"product_id": ..., "quantity": ...}, ...]`` into
    ``(product_id, quantity)`` pairs, collecting every issue before raising.
    """
    if not line_items:
        raise ValidationError(details=[{"path": ["items"], "msg": "Order must contain at least 1 item"}])

    lines = []
    issues = []
    for index, item in enumerate(line_items):
        if not isinstance(item, Mapping):
            issues.append({"path": ["items", index], "msg": "Line item must be an object"})
            continue
        product_id = item.get("product_id")
        quantity = item.get("quantity")
        if not _is_positive_int(product_id):
            issues.append({"path": ["items", index, "productId"], "msg": "Product id must be a positive integer"})
        if not _is_positive_int(quantity):
            issues.append({"path": ["items", index, "quantity"], "msg": "Quantity must be a positive integer"})
        lines.append((product_id, quantity))

    if issues:
        raise ValidationError(details=issues)
    return lines


# --- 2. Order Placement ---

@dataclass
class PlacedOrder:
    order: Order
    items: List[OrderItem] = field(default_factory=list)
    points: int = 0


class OrderPlacementEngine:
    """
    Places an order and settles its loyalty points in one transaction.

    Products are read once, before the transaction. Their price is used as the
    line's unit price snapshot; their stock is only trusted for the early
    rejection; the write itself is ``stock = stock - q WHERE stock >= q``, so
    a concurrent order that drained the product in the meantime turns into a
    ConflictError and a full rollback instead of an oversell.
    """

    def __init__(self, using="default"):
        self.using = using

    def place_order(self, user_id, line_items):
        lines = validate_line_items(line_items)
        products = self._load_products({product_id for product_id, _ in lines})
        self._check_stock(lines, products)
        self._check_total(lines, products)
        self._check_buyer(user_id)

        with transaction.atomic(using=self.using):
            order = Order.objects.using(self.using).create(user_id=user_id, total_price=0)
            self._decrement_stock(lines, products)

            items = [
                OrderItem(
                    order=order,
                    product_id=product_id,
                    quantity=quantity,
                    unit_price=products[product_id].price,
                    total_price=products[product_id].price * quantity,
                )
                for product_id, quantity in lines
            ]
            items = OrderItem.objects.using(self.using).bulk_create(items)

            order.total_price = sum(item.total_price for item in items)
            order.save(using=self.using, update_fields=["total_price"])

            points = points_for(order.total_price)
            credited = (
                User.objects.db_manager(self.using)
                .filter(pk=user_id)
                .update(point=F("point") + points)
            )
            if not credited:
                raise NotFoundError("User not found")

        logger.info(
            "Order %s placed by user %s: total=%s points=%s lines=%s",
            order.pk, user_id, order.total_price, points, len(items),
        )
        return PlacedOrder(order=order, items=items, points=points)

    def _load_products(self, product_ids):
        products = Product.objects.using(self.using).active().filter(pk__in=product_ids)
        by_id = {product.pk: product for product in products}
        if len(by_id) < len(product_ids):
            missing = sorted(product_ids - set(by_id))
            logger.warning("Order rejected, products not found: %s", missing)
            raise NotFoundError(
                "One or more products not found",
                [{"path": ["items"], "msg": f"Product {product_id} not found"} for product_id in missing],
            )
        return by_id

    def _check_stock(self, lines, products):
        # Repeated product ids draw from the same stock
        requested = Counter()
        for product_id, quantity in lines:
            requested[product_id] += quantity
            product = products[product_id]
            if product.stock < requested[product_id]:
                logger.warning(
                    "Order rejected, product %s has stock %s, requested %s",
                    product_id, product.stock, requested[product_id],
                )
                raise InsufficientStockError(product, requested[product_id])

    def _check_total(self, lines, products):
        total = sum(products[product_id].price * quantity for product_id, quantity in lines)
        if total > BIGINT_MAX:
            raise ValidationError("Order total is too large", [{"path": ["items"], "msg": "Order total is too large"}])

    def _check_buyer(self, user_id):
        if not User.objects.db_manager(self.using).active().filter(pk=user_id).exists():
            raise NotFoundError("User not found")

    def _decrement_stock(self, lines, products):
        totals = Counter()
        for product_id, quantity in lines:
            totals[product_id] += quantity

        # Ascending id order keeps row locks ordered across concurrent orders
        for product_id in sorted(totals):
            quantity = totals[product_id]
            updated = (
                Product.objects.using(self.using)
                .filter(pk=product_id, stock__gte=quantity)
                .update(stock=F("stock") - quantity)
            )
            if not updated:
                logger.warning("Stock for product %s changed during checkout", product_id)
                raise ConflictError(
                    f"Not enough stock for product {products[product_id].name}",
                    [{"productId": product_id, "requested": quantity}],
                )


def place_order(user_id, line_items, using="default"):
    return OrderPlacementEngine(using=using).place_order(user_id, line_items)


# --- 3. Points ---

def transfer_point(sender_id, receiver_id, amount, using="default"):
    """Moves ``amount`` points from sender to receiver; both balances are returned refreshed."""
    if not _is_positive_int(amount):
        raise ValidationError(
            "Point must be greater than 0",
            [{"path": ["amount"], "msg": "Invalid amount"}],
        )
    if sender_id == receiver_id:
        raise ValidationError("Can't self transfer point")
    if not _is_positive_int(sender_id) or not _is_positive_int(receiver_id):
        raise NotFoundError("Sender or Receiver not found")

    with transaction.atomic(using=using):
        users = User.objects.db_manager(using).active().filter(pk__in=[sender_id, receiver_id])
        # Lock both rows in primary key order
        locked = {user.pk: user for user in users.select_for_update().order_by("pk")}
        sender = locked.get(sender_id)
        receiver = locked.get(receiver_id)
        if sender is None or receiver is None:
            raise NotFoundError("Sender or Receiver not found")
        if sender.point < amount:
            raise InsufficientPointsError()

        manager = User.objects.db_manager(using)
        debited = manager.filter(pk=sender_id, point__gte=amount).update(point=F("point") - amount)
        if not debited:
            raise InsufficientPointsError()
        manager.filter(pk=receiver_id).update(point=F("point") + amount)

        sender.refresh_from_db(fields=["point"])
        receiver.refresh_from_db(fields=["point"])

    logger.info("User %s transferred %s points to user %s", sender_id, amount, receiver_id)
    return sender, receiver


# --- 4. Products ---

def _validate_product_fields(name, price, stock):
    issues = []
    if not name:
        issues.append({"path": ["name"], "msg": "Invalid product name"})
    if not _is_positive_int(price, INT_MAX):
        issues.append({"path": ["price"], "msg": "Price must be a positive number"})
    if stock is not None and (not isinstance(stock, int) or isinstance(stock, bool) or stock < 0 or stock > INT_MAX):
        issues.append({"path": ["stock"], "msg": "Stock can't be negative"})
    if issues:
        raise ValidationError(details=issues)


def create_product(name, price, desc="", stock=0, image=None):
    stock = 0 if stock is None else stock
    _validate_product_fields(name, price, stock)
    check_upload(image)
    product = Product.objects.create(name=name, desc=desc or "", price=price, stock=stock, image=image)
    logger.info("Product %s created", product.pk)
    return product


def update_product(product_id, name, price, desc="", stock=None, image=None):
    _validate_product_fields(name, price, stock)
    check_upload(image)
    try:
        product = Product.objects.get(pk=product_id)
    except Product.DoesNotExist:
        raise NotFoundError("Product not found")

    product.name = name
    product.desc = desc or ""
    product.price = price
    if stock is not None:
        product.stock = stock
    # Without a new upload the previous image stays
    if image is not None:
        product.image = image
    product.save()
    return product


def delete_product(product_id):
    product = Product.objects.active().filter(pk=product_id).first()
    if product is None:
        raise NotFoundError("Product not found")
    product.deleted_at = timezone.now()
    product.save(update_fields=["deleted_at", "updated_at"])
    logger.info("Product %s soft deleted", product_id)
    return product


def restore_product(product_id):
    product = Product.objects.deleted().filter(pk=product_id).first()
    if product is None:
        raise NotFoundError("Product not found")
    product.deleted_at = None
    product.save(update_fields=["deleted_at", "updated_at"])
    return product


# --- 5. Users ---

def _get_user(user_id, queryset=None):
    queryset = queryset if queryset is not None else User.objects.all()
    user = queryset.filter(pk=user_id).first()
    if user is None:
        raise NotFoundError("User not found")
    return user


def deactivate_user(user_id):
    user = _get_user(user_id)
    user.deleted_at = timezone.now()
    user.is_active = False
    user.save(update_fields=["deleted_at", "is_active", "updated_at"])
    logger.info("User %s deactivated", user_id)
    return user


def activate_user(user_id):
    user = _get_user(user_id, User.objects.filter(deleted_at__isnull=False))
    user.deleted_at = None
    user.is_active = True
    user.save(update_fields=["deleted_at", "is_active", "updated_at"])
    logger.info("User %s activated", user_id)
    return user


def set_profile_image(user_id, image):
    if image is None:
        raise ValidationError("No file uploaded")
    check_upload(image)
    user = _get_user(user_id)
    user.image = image
    user.save(update_fields=["image", "updated_at"])
    return user
