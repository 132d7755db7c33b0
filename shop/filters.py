from django.db.models import Count, Max, Q, Sum
from django_filters import CharFilter, FilterSet, NumberFilter

from .models import Order, Product, Role, User


class SoftDeleteStatusMixin:
    """
    Adds the ``status`` filter (``active`` | ``deleted``). Without it only live
    rows are returned; unknown values are treated as ``active``.
    """
    deleted_requires_admin = False

    def filter_queryset(self, queryset):
        if not self.form.cleaned_data.get("status"):
            queryset = queryset.filter(deleted_at__isnull=True)
        return super().filter_queryset(queryset)

    def filter_status(self, queryset, name, value):
        if value == "deleted" and self._may_see_deleted():
            return queryset.filter(deleted_at__isnull=False)
        return queryset.filter(deleted_at__isnull=True)

    def _may_see_deleted(self):
        if not self.deleted_requires_admin:
            return True
        user = getattr(self.request, "user", None)
        return bool(getattr(user, "is_admin", False))


class ProductFilter(SoftDeleteStatusMixin, FilterSet):
    """
    Filter set for the Product model: keyword search on name and description,
    price and stock ranges, and soft-delete status (deleted rows are admin only).
    """
    deleted_requires_admin = True

    keyword = CharFilter(method="filter_keyword")
    status = CharFilter(method="filter_status")

    # Price range filters (e.g., minPrice, maxPrice)
    min_price = NumberFilter(field_name="price", lookup_expr="gte")
    max_price = NumberFilter(field_name="price", lookup_expr="lte")

    # Stock range filters (e.g., minStock, maxStock)
    min_stock = NumberFilter(field_name="stock", lookup_expr="gte")
    max_stock = NumberFilter(field_name="stock", lookup_expr="lte")

    class Meta:
        model = Product
        fields = []

    def filter_keyword(self, queryset, name, value):
        return queryset.filter(Q(name__icontains=value) | Q(desc__icontains=value))


class OrderFilter(FilterSet):
    """Filter set for orders, on the order total."""
    min_price = NumberFilter(field_name="total_price", lookup_expr="gte")
    max_price = NumberFilter(field_name="total_price", lookup_expr="lte")

    class Meta:
        model = Order
        fields = []


class OrderSummaryFilter(FilterSet):
    """
    Filters the per-user order summary. Every filter targets an aggregate, so
    the ORM renders them as HAVING clauses.
    """
    min_price = NumberFilter(field_name="sum_total_price", lookup_expr="gte")
    max_price = NumberFilter(field_name="sum_total_price", lookup_expr="lte")
    min_order = NumberFilter(field_name="order_count", lookup_expr="gte")
    max_order = NumberFilter(field_name="order_count", lookup_expr="lte")


def order_summaries(queryset=None):
    queryset = queryset if queryset is not None else Order.objects.all()
    return queryset.values("user_id").annotate(
        order_count=Count("id"),
        sum_total_price=Sum("total_price"),
        last_created_at=Max("created_at"),
    )


class UserFilter(SoftDeleteStatusMixin, FilterSet):
    """Filter set for users: email keyword, role, status and point range."""
    keyword = CharFilter(field_name="email", lookup_expr="icontains")
    role = CharFilter(method="filter_role")
    status = CharFilter(method="filter_status")

    min_point = NumberFilter(field_name="point", lookup_expr="gte")
    max_point = NumberFilter(field_name="point", lookup_expr="lte")

    class Meta:
        model = User
        fields = []

    def filter_role(self, queryset, name, value):
        # Unknown roles are ignored rather than rejected
        if value in Role.values:
            return queryset.filter(role=value)
        return queryset
