from rest_framework import serializers

from .models import BIGINT_MAX, INT_MAX, Order, OrderItem, Product, User


# --- 1. Inputs ---

class OrderItemIn(serializers.Serializer):
    productId = serializers.IntegerField(min_value=1, max_value=BIGINT_MAX, source="product_id")
    quantity = serializers.IntegerField(min_value=1, max_value=BIGINT_MAX, default=1)


class OrderCreateIn(serializers.Serializer):
    items = OrderItemIn(many=True)

    def validate_items(self, items):
        if not items:
            raise serializers.ValidationError("Order must contain at least 1 item")
        return items


class TransferPointIn(serializers.Serializer):
    receiverId = serializers.IntegerField(min_value=1, max_value=BIGINT_MAX, source="receiver_id")
    amount = serializers.IntegerField(min_value=1, max_value=BIGINT_MAX)


class ProductIn(serializers.Serializer):
    name = serializers.CharField(min_length=1, max_length=200)
    desc = serializers.CharField(allow_blank=True, required=False, default="")
    price = serializers.IntegerField(min_value=1, max_value=INT_MAX)
    stock = serializers.IntegerField(min_value=0, max_value=INT_MAX, required=False)
    image = serializers.FileField(required=False)


# --- 2. Outputs ---

class StoredFileField(serializers.Field):
    """Renders an uploaded file as its stored filename."""

    def __init__(self, **kwargs):
        kwargs.setdefault("read_only", True)
        super().__init__(**kwargs)

    def get_attribute(self, instance):
        stored = super().get_attribute(instance)
        return stored.name if stored else None

    def to_representation(self, value):
        return value


class OrderItemSerializer(serializers.ModelSerializer):
    productId = serializers.IntegerField(source="product_id")
    unitPrice = serializers.IntegerField(source="unit_price")
    totalPrice = serializers.IntegerField(source="total_price")

    class Meta:
        model = OrderItem
        fields = ("id", "productId", "quantity", "unitPrice", "totalPrice")


class OrderSerializer(serializers.ModelSerializer):
    userId = serializers.IntegerField(source="user_id")
    totalPrice = serializers.IntegerField(source="total_price")
    createdAt = serializers.DateTimeField(source="created_at")
    items = OrderItemSerializer(many=True)

    class Meta:
        model = Order
        fields = ("id", "userId", "totalPrice", "createdAt", "items")


def placed_order_payload(placed):
    """``{id, userId, totalPrice, createdAt, points, items}`` for a freshly placed order."""
    order = placed.order
    return {
        "id": order.pk,
        "userId": order.user_id,
        "totalPrice": order.total_price,
        "createdAt": serializers.DateTimeField().to_representation(order.created_at),
        "points": placed.points,
        "items": OrderItemSerializer(placed.items, many=True).data,
    }


class OrderSummarySerializer(serializers.Serializer):
    userId = serializers.IntegerField(source="user_id")
    orderCount = serializers.IntegerField(source="order_count")
    totalPrice = serializers.IntegerField(source="sum_total_price")
    createdAt = serializers.DateTimeField(source="last_created_at")


class ProductSerializer(serializers.ModelSerializer):
    image = StoredFileField()
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)
    deletedAt = serializers.DateTimeField(source="deleted_at", read_only=True)

    class Meta:
        model = Product
        fields = ("id", "name", "desc", "price", "stock", "image", "createdAt", "updatedAt", "deletedAt")


class UserSerializer(serializers.ModelSerializer):
    image = StoredFileField()
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)
    deletedAt = serializers.DateTimeField(source="deleted_at", read_only=True)

    class Meta:
        model = User
        fields = ("id", "username", "email", "role", "point", "image", "createdAt", "updatedAt", "deletedAt")


class PointBalanceSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ("id", "email", "point")
