"""Order placement: stock, totals, point credit and rollback."""
import threading

import pytest
from django.db import connection

from shop.errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from shop.models import Order, OrderItem, Product, User
from shop.services import OrderPlacementEngine, place_order, points_for

pytestmark = pytest.mark.django_db


def test_place_order_end_to_end(buyer, make_product):
    a = make_product("A", price=600, stock=5)
    b = make_product("B", price=1500, stock=2)

    placed = place_order(buyer.pk, [
        {"product_id": a.pk, "quantity": 2},
        {"product_id": b.pk, "quantity": 1},
    ])

    assert placed.order.total_price == 2700
    assert placed.points == 2
    a.refresh_from_db()
    b.refresh_from_db()
    buyer.refresh_from_db()
    assert a.stock == 3
    assert b.stock == 1
    assert buyer.point == 2


def test_order_total_matches_items(buyer, make_product):
    a = make_product("A", price=250, stock=10)
    b = make_product("B", price=999, stock=10)

    placed = place_order(buyer.pk, [
        {"product_id": b.pk, "quantity": 3},
        {"product_id": a.pk, "quantity": 4},
    ])

    order = Order.objects.get(pk=placed.order.pk)
    items = list(order.items.order_by("pk"))
    assert [i.product_id for i in items] == [b.pk, a.pk]
    for item in items:
        assert item.total_price == item.unit_price * item.quantity
    assert order.total_price == sum(i.total_price for i in items) == 3997


@pytest.mark.parametrize("total, points", [(2999, 2), (3000, 3), (999, 0)])
def test_points_per_full_thousand(buyer, make_product, total, points):
    product = make_product(price=total, stock=1)

    placed = place_order(buyer.pk, [{"product_id": product.pk, "quantity": 1}])

    assert placed.points == points == points_for(total)
    buyer.refresh_from_db()
    assert buyer.point == points


def test_points_accumulate_across_orders(make_user, make_product):
    user = make_user("loyal", point=5)
    product = make_product(price=1200, stock=10)

    place_order(user.pk, [{"product_id": product.pk, "quantity": 1}])
    place_order(user.pk, [{"product_id": product.pk, "quantity": 2}])

    user.refresh_from_db()
    assert user.point == 5 + 1 + 2


def test_unit_price_is_a_snapshot(buyer, make_product):
    product = make_product(price=700, stock=5)
    placed = place_order(buyer.pk, [{"product_id": product.pk, "quantity": 1}])

    Product.objects.filter(pk=product.pk).update(price=9000)

    item = OrderItem.objects.get(pk=placed.items[0].pk)
    assert item.unit_price == 700


def test_missing_product_rejects_whole_order(buyer, make_product):
    product = make_product(stock=5)

    with pytest.raises(NotFoundError, match="One or more products not found"):
        place_order(buyer.pk, [
            {"product_id": product.pk, "quantity": 1},
            {"product_id": product.pk + 100, "quantity": 1},
        ])

    assert Order.objects.count() == 0
    product.refresh_from_db()
    assert product.stock == 5


def test_soft_deleted_product_is_not_found(buyer, make_product):
    from django.utils import timezone

    product = make_product(stock=5, deleted_at=timezone.now())

    with pytest.raises(NotFoundError):
        place_order(buyer.pk, [{"product_id": product.pk, "quantity": 1}])
    assert Order.objects.count() == 0


def test_insufficient_stock_names_product(buyer, make_product):
    ok = make_product("Plenty", stock=10)
    short = make_product("Scarce", stock=1)

    with pytest.raises(InsufficientStockError, match="Scarce") as exc_info:
        place_order(buyer.pk, [
            {"product_id": ok.pk, "quantity": 1},
            {"product_id": short.pk, "quantity": 2},
        ])

    assert exc_info.value.status_code == 400
    assert Order.objects.count() == 0
    ok.refresh_from_db()
    assert ok.stock == 10


def test_repeated_product_lines_share_stock(buyer, make_product):
    product = make_product(stock=3)

    with pytest.raises(InsufficientStockError):
        place_order(buyer.pk, [
            {"product_id": product.pk, "quantity": 2},
            {"product_id": product.pk, "quantity": 2},
        ])

    placed = place_order(buyer.pk, [
        {"product_id": product.pk, "quantity": 2},
        {"product_id": product.pk, "quantity": 1},
    ])
    assert len(placed.items) == 2
    product.refresh_from_db()
    assert product.stock == 0


@pytest.mark.parametrize("line_items", [
    [],
    [{"product_id": 1, "quantity": 0}],
    [{"product_id": 1, "quantity": -2}],
    [{"product_id": 1, "quantity": True}],
    [{"product_id": "1", "quantity": 1}],
    [{"product_id": 0, "quantity": 1}],
    ["not-a-line"],
])
def test_malformed_line_items(buyer, line_items):
    with pytest.raises(ValidationError) as exc_info:
        place_order(buyer.pk, line_items)
    assert exc_info.value.details
    assert all({"path", "msg"} <= set(issue) for issue in exc_info.value.details)


def test_inactive_buyer_is_rejected(make_user, make_product):
    from django.utils import timezone

    user = make_user("gone", deleted_at=timezone.now())
    product = make_product(stock=2)

    with pytest.raises(NotFoundError, match="User not found"):
        place_order(user.pk, [{"product_id": product.pk, "quantity": 1}])
    product.refresh_from_db()
    assert product.stock == 2


class DrainingEngine(OrderPlacementEngine):
    """Empties one product right after the pre-transaction read, like a competing checkout."""

    def __init__(self, drained, **kwargs):
        super().__init__(**kwargs)
        self.drained = drained

    def _load_products(self, product_ids):
        products = super()._load_products(product_ids)
        Product.objects.filter(pk=self.drained.pk).update(stock=0)
        return products


def test_stock_drained_after_validation_rolls_back_everything(buyer, make_product):
    first = make_product("First", price=2000, stock=5)
    second = make_product("Second", price=2000, stock=2)

    engine = DrainingEngine(drained=second, using="default")
    with pytest.raises(ConflictError) as exc_info:
        engine.place_order(buyer.pk, [
            {"product_id": first.pk, "quantity": 2},
            {"product_id": second.pk, "quantity": 1},
        ])

    assert exc_info.value.status_code == 409
    assert Order.objects.count() == 0
    assert OrderItem.objects.count() == 0
    first.refresh_from_db()
    assert first.stock == 5
    buyer.refresh_from_db()
    assert buyer.point == 0


@pytest.mark.django_db(transaction=True)
@pytest.mark.skipif(connection.vendor != "postgresql", reason="needs row locking across connections")
def test_concurrent_orders_never_oversell(make_user, make_product):
    product = make_product(price=100, stock=5)
    buyers = [make_user(f"racer{i}") for i in range(4)]
    outcomes = []
    start = threading.Barrier(len(buyers))

    def checkout(user):
        try:
            start.wait()
            place_order(user.pk, [{"product_id": product.pk, "quantity": 3}])
            outcomes.append("ok")
        except (ConflictError, InsufficientStockError):
            outcomes.append("rejected")
        finally:
            connection.close()

    threads = [threading.Thread(target=checkout, args=(user,)) for user in buyers]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count("ok") == 1
    assert outcomes.count("rejected") == 3
    product.refresh_from_db()
    assert product.stock == 2
    assert sum(User.objects.values_list("point", flat=True)) == 0


def test_product_id_beyond_the_id_range_is_a_validation_issue(buyer):
    with pytest.raises(ValidationError) as exc_info:
        place_order(buyer.pk, [{"product_id": 10**20, "quantity": 1}])
    assert exc_info.value.details[0]["path"] == ["items", 0, "productId"]
    assert Order.objects.count() == 0


def test_large_totals_are_stored_as_big_integers(buyer, make_product):
    product = make_product("Server rack", price=1_000_000, stock=3000)

    placed = place_order(buyer.pk, [{"product_id": product.pk, "quantity": 3000}])

    assert placed.order.total_price == 3_000_000_000
    assert placed.points == 3_000_000
    order = Order.objects.get(pk=placed.order.pk)
    assert order.total_price == 3_000_000_000
    assert order.items.get().total_price == 3_000_000_000
    buyer.refresh_from_db()
    assert buyer.point == 3_000_000
    for model, name in [(Order, "total_price"), (OrderItem, "unit_price"), (OrderItem, "total_price"),
                        (User, "point")]:
        assert model._meta.get_field(name).get_internal_type() == "BigIntegerField"
