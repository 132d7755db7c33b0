import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from shop.models import Product, Role, User


@pytest.fixture
def make_user(db):
    def make(username="buyer", role=Role.USER, point=0, **extra):
        return User.objects.create_user(
            username=username,
            email=f"{username}@example.com",
            password="secret-pass-123",
            role=role,
            point=point,
            **extra,
        )
    return make


@pytest.fixture
def make_product(db):
    def make(name="Widget", price=1000, stock=10, **extra):
        return Product.objects.create(name=name, price=price, stock=stock, **extra)
    return make


@pytest.fixture
def buyer(make_user):
    return make_user("buyer")


@pytest.fixture
def admin(make_user):
    return make_user("admin", role=Role.ADMIN)


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def buyer_client(api_client, buyer):
    api_client.force_authenticate(user=buyer)
    return api_client


@pytest.fixture
def admin_client(admin):
    client = APIClient()
    client.force_authenticate(user=admin)
    return client


@pytest.fixture(autouse=True)
def media_root(settings, tmp_path):
    settings.MEDIA_ROOT = str(tmp_path / "media")


@pytest.fixture(autouse=True)
def reset_throttles():
    # Request rates are counted in the default cache
    cache.clear()
    yield
    cache.clear()
