import functools

import graphene
from graphene_django.types import DjangoObjectType
from graphql import GraphQLError

from . import services
from .errors import ShopError
from .filters import OrderFilter, ProductFilter
from .models import Order, OrderItem, Product, User
from .querying import build_ordering, paginate, parse_page_params

# --- 1. Output Types ---

class UserType(DjangoObjectType):
    class Meta:
        model = User
        fields = ('id', 'username', 'email', 'role', 'point', 'created_at')
        convert_choices_to_enum = False


class ProductType(DjangoObjectType):
    class Meta:
        model = Product
        fields = ('id', 'name', 'desc', 'price', 'stock', 'created_at', 'deleted_at')


class OrderItemType(DjangoObjectType):
    product_id = graphene.Int()

    class Meta:
        model = OrderItem
        fields = ('id', 'quantity', 'unit_price', 'total_price')

    def resolve_product_id(self, info):
        return self.product_id


class OrderType(DjangoObjectType):
    user_id = graphene.Int()

    class Meta:
        model = Order
        fields = ('id', 'total_price', 'created_at', 'items')

    def resolve_user_id(self, info):
        return self.user_id


# --- 2. Inputs ---

class LineItemInput(graphene.InputObjectType):
    product_id = graphene.Int(required=True)
    quantity = graphene.Int(required=False, default_value=1)


class ProductInput(graphene.InputObjectType):
    name = graphene.String(required=True)
    desc = graphene.String(required=False)
    price = graphene.Int(required=True)
    stock = graphene.Int(required=False)


# --- 3. Helpers ---

def current_user(info, admin=False):
    user = getattr(info.context, 'user', None)
    if user is None or not user.is_authenticated:
        raise GraphQLError("Authentication required", extensions={"code": "UNAUTHENTICATED", "status": 401})
    if admin and not user.is_admin:
        raise GraphQLError("Admin role required", extensions={"code": "FORBIDDEN", "status": 403})
    return user


def shop_errors(mutate):
    """Re-raises service errors as GraphQL errors carrying their status and details."""
    @functools.wraps(mutate)
    def wrapper(*args, **kwargs):
        try:
            return mutate(*args, **kwargs)
        except ShopError as e:
            raise GraphQLError(
                e.message,
                extensions={"code": type(e).__name__, "status": e.status_code, "details": e.details},
            )
    return wrapper


# --- 4. Mutation Classes ---

class PlaceOrder(graphene.Mutation):
    class Arguments:
        items = graphene.List(graphene.NonNull(LineItemInput), required=True)

    order = graphene.Field(OrderType)
    items = graphene.List(OrderItemType)
    points = graphene.Int()

    @staticmethod
    @shop_errors
    def mutate(root, info, items=None):
        user = current_user(info)
        line_items = [{'product_id': i.product_id, 'quantity': i.quantity} for i in items or []]
        placed = services.place_order(user.pk, line_items)
        return PlaceOrder(order=placed.order, items=placed.items, points=placed.points)


class TransferPoint(graphene.Mutation):
    class Arguments:
        receiver_id = graphene.Int(required=True)
        amount = graphene.Int(required=True)

    sender = graphene.Field(UserType)
    receiver = graphene.Field(UserType)

    @staticmethod
    @shop_errors
    def mutate(root, info, receiver_id, amount):
        user = current_user(info)
        sender, receiver = services.transfer_point(user.pk, receiver_id, amount)
        return TransferPoint(sender=sender, receiver=receiver)


class CreateProduct(graphene.Mutation):
    class Arguments:
        input = ProductInput(required=True)

    product = graphene.Field(ProductType)

    @staticmethod
    @shop_errors
    def mutate(root, info, input=None):
        current_user(info, admin=True)
        product = services.create_product(
            name=input.name,
            desc=input.desc or "",
            price=input.price,
            stock=input.stock,
        )
        return CreateProduct(product=product)


# --- 5. Shop App Root Query and Mutation ---

class ShopQuery(graphene.ObjectType):
    """
    Root query fields for the shop app. List fields take the same filters,
    ``sortBy`` and ``page``/``limit`` as the REST endpoints.
    """
    me = graphene.Field(UserType)
    products = graphene.List(
        ProductType,
        keyword=graphene.String(),
        status=graphene.String(),
        min_price=graphene.Int(),
        max_price=graphene.Int(),
        min_stock=graphene.Int(),
        max_stock=graphene.Int(),
        sort_by=graphene.String(),
        page=graphene.Int(),
        limit=graphene.Int(),
    )
    orders = graphene.List(
        OrderType,
        min_price=graphene.Int(),
        max_price=graphene.Int(),
        sort_by=graphene.String(),
        page=graphene.Int(),
        limit=graphene.Int(),
    )

    def resolve_me(root, info):
        return current_user(info)

    def resolve_products(root, info, sort_by=None, page=None, limit=None, **filters):
        current_user(info)
        qs = ProductFilter(filters, queryset=Product.objects.all(), request=info.context).qs
        ordering = build_ordering(
            sort_by, {"name": "name", "price": "price", "stock": "stock", "createdAt": "created_at"}
        )
        return paginate(qs.order_by(*ordering), *parse_page_params({"page": page, "limit": limit}))

    def resolve_orders(root, info, sort_by=None, page=None, limit=None, **filters):
        user = current_user(info)
        qs = Order.objects.prefetch_related('items')
        if not user.is_admin:
            qs = qs.filter(user=user)
        qs = OrderFilter(filters, queryset=qs).qs
        ordering = build_ordering(sort_by, {"totalPrice": "total_price", "createdAt": "created_at"})
        return paginate(qs.order_by(*ordering), *parse_page_params({"page": page, "limit": limit}))


class ShopMutation(graphene.ObjectType):
    """Order placement, point transfer and product creation."""
    place_order = PlaceOrder.Field()
    transfer_point = TransferPoint.Field()
    create_product = CreateProduct.Field()
