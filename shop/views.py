import logging

from django.http import JsonResponse
from rest_framework import exceptions, generics, status
from rest_framework.decorators import api_view, parser_classes, permission_classes
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import exception_handler

from . import services
from .errors import NotFoundError, ShopError
from .filters import OrderFilter, OrderSummaryFilter, ProductFilter, UserFilter, order_summaries
from .models import Order, Product, User
from .permissions import IsAdminRole
from .querying import build_ordering
from .serializers import (
    OrderCreateIn,
    OrderSerializer,
    OrderSummarySerializer,
    PointBalanceSerializer,
    ProductIn,
    ProductSerializer,
    TransferPointIn,
    UserSerializer,
    placed_order_payload,
)

logger = logging.getLogger(__name__)


# --- 1. Error rendering ---

def _issues(detail, path=()):
    """Flattens DRF's nested error detail into ``[{"path": [...], "msg": ...}]``."""
    if isinstance(detail, dict):
        return [issue for key, value in detail.items() for issue in _issues(value, path + (key,))]
    if isinstance(detail, list):
        if all(isinstance(item, str) for item in detail):
            return [{"path": list(path), "msg": str(item)} for item in detail]
        return [issue for index, value in enumerate(detail) for issue in _issues(value, path + (index,))]
    return [{"path": list(path), "msg": str(detail)}]


def shop_exception_handler(exc, context):
    """Renders every error as ``{"error": message, "details": [...]}``."""
    if isinstance(exc, ShopError):
        return Response(exc.as_dict(), status=exc.status_code)

    if isinstance(exc, exceptions.ValidationError):
        return Response(
            {"error": "Invalid request body", "details": _issues(exc.detail)},
            status=status.HTTP_400_BAD_REQUEST,
        )

    response = exception_handler(exc, context)
    if response is not None:
        detail = response.data.get("detail") if isinstance(response.data, dict) else response.data
        if isinstance(exc, exceptions.Throttled):
            detail = "Request limit exceeded, try again later"
        response.data = {"error": str(detail), "details": []}
        return response

    view = context.get("view")
    logger.exception("Unhandled error in %s", view.__class__.__name__ if view else "unknown view")
    return Response(
        {"error": "Internal server error", "details": []},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def not_found(request, exception=None):
    """JSON 404 for routes no view matched."""
    return JsonResponse(
        {"error": "Not found", "details": [{"path": request.get_full_path(), "method": request.method}]},
        status=404,
    )


class SortedListView(generics.ListAPIView):
    """List view ordered by ``?sort_by=<column>.<asc|desc>``."""
    sort_columns = {}
    default_ordering = ("-created_at",)

    def filter_queryset(self, queryset):
        queryset = super().filter_queryset(queryset)
        ordering = build_ordering(
            self.request.query_params.get("sort_by"), self.sort_columns, self.default_ordering
        )
        return queryset.order_by(*ordering)


# --- 2. Orders ---

class OrderListCreateView(SortedListView):
    serializer_class = OrderSerializer
    filterset_class = OrderFilter
    sort_columns = {"totalPrice": "total_price", "createdAt": "created_at"}

    def get_queryset(self):
        queryset = Order.objects.prefetch_related("items")
        if not self.request.user.is_admin:
            queryset = queryset.filter(user=self.request.user)
        return queryset

    def post(self, request):
        ser = OrderCreateIn(data=request.data)
        ser.is_valid(raise_exception=True)

        placed = services.place_order(request.user.pk, ser.validated_data["items"])
        headers = {"Location": f"/api/orders/{placed.order.pk}"}
        return Response({"order": placed_order_payload(placed)}, status=status.HTTP_201_CREATED, headers=headers)


class UserOrderListView(OrderListCreateView):
    permission_classes = [IsAdminRole]
    http_method_names = ["get", "head", "options"]

    def get_queryset(self):
        user_id = self.kwargs["user_id"]
        if not User.objects.filter(pk=user_id).exists():
            raise NotFoundError("User not found")
        return Order.objects.prefetch_related("items").filter(user_id=user_id)


class OrderSummaryView(SortedListView):
    permission_classes = [IsAdminRole]
    serializer_class = OrderSummarySerializer
    filterset_class = OrderSummaryFilter
    sort_columns = {"totalPrice": "sum_total_price", "orderCount": "order_count"}
    default_ordering = ("-last_created_at",)

    def get_queryset(self):
        return order_summaries()


# --- 3. Products ---

class ProductListCreateView(SortedListView):
    serializer_class = ProductSerializer
    filterset_class = ProductFilter
    parser_classes = [JSONParser, MultiPartParser, FormParser]
    sort_columns = {"name": "name", "price": "price", "stock": "stock", "createdAt": "created_at"}

    def get_permissions(self):
        if self.request.method == "POST":
            return [IsAdminRole()]
        return [IsAuthenticated()]

    def get_queryset(self):
        return Product.objects.all()

    def post(self, request):
        ser = ProductIn(data=request.data)
        ser.is_valid(raise_exception=True)
        product = services.create_product(**ser.validated_data)
        return Response({"product": ProductSerializer(product).data}, status=status.HTTP_201_CREATED)


class ProductDetailView(generics.GenericAPIView):
    permission_classes = [IsAdminRole]
    parser_classes = [JSONParser, MultiPartParser, FormParser]

    def put(self, request, product_id):
        ser = ProductIn(data=request.data)
        ser.is_valid(raise_exception=True)
        product = services.update_product(product_id, **ser.validated_data)
        return Response({"product": ProductSerializer(product).data})

    def delete(self, request, product_id):
        services.delete_product(product_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(["PATCH"])
@permission_classes([IsAdminRole])
def restore_product(request, product_id):
    product = services.restore_product(product_id)
    data = {"id": product.pk, "name": product.name, "createdAt": ProductSerializer(product).data["createdAt"]}
    return Response({"restoredProduct": data})


# --- 4. Users ---

class UserListView(SortedListView):
    permission_classes = [IsAdminRole]
    serializer_class = UserSerializer
    filterset_class = UserFilter
    sort_columns = {"email": "email", "role": "role", "point": "point"}

    def get_queryset(self):
        return User.objects.all()


@api_view(["GET", "DELETE"])
def me(request):
    if request.method == "DELETE":
        user = services.deactivate_user(request.user.pk)
        return Response(UserSerializer(user).data)
    return Response(UserSerializer(request.user).data)


@api_view(["GET", "DELETE"])
@permission_classes([IsAdminRole])
def user_detail(request, user_id):
    if request.method == "DELETE":
        user = services.deactivate_user(user_id)
        return Response(UserSerializer(user).data)
    user = User.objects.filter(pk=user_id).first()
    if user is None:
        raise NotFoundError("User not found")
    return Response(UserSerializer(user).data)


@api_view(["PATCH"])
@permission_classes([IsAdminRole])
def activate_user(request, user_id):
    user = services.activate_user(user_id)
    data = {"id": user.pk, "email": user.email, "createdAt": UserSerializer(user).data["createdAt"]}
    return Response({"activatedUser": data})


@api_view(["POST"])
def transfer_point(request):
    ser = TransferPointIn(data=request.data)
    ser.is_valid(raise_exception=True)

    sender, receiver = services.transfer_point(
        request.user.pk, ser.validated_data["receiver_id"], ser.validated_data["amount"]
    )
    return Response({
        "sender": PointBalanceSerializer(sender).data,
        "receiver": PointBalanceSerializer(receiver).data,
    })


@api_view(["PATCH"])
@parser_classes([MultiPartParser, FormParser])
def upload_profile_image(request):
    user = services.set_profile_image(request.user.pk, request.FILES.get("image"))
    return Response({"updatedUser": UserSerializer(user).data})
