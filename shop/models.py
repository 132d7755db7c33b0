import os
import uuid

from django.contrib.auth.models import AbstractUser, UserManager as DjangoUserManager
from django.db import models
from django.db.models import Q

# Largest values the integer columns accept on every supported backend
INT_MAX = 2**31 - 1
BIGINT_MAX = 2**63 - 1


def _uuid_name(folder, filename):
    return f"{folder}/{uuid.uuid4()}{os.path.splitext(filename)[1].lower()}"


def user_image_path(instance, filename):
    return _uuid_name("users", filename)


def product_image_path(instance, filename):
    return _uuid_name("products", filename)


class Role(models.TextChoices):
    ADMIN = "ADMIN", "Admin"
    USER = "USER", "User"


class ActiveQuerySet(models.QuerySet):
    """Soft-delete aware product queryset."""

    def active(self):
        return self.filter(deleted_at__isnull=True)

    def deleted(self):
        return self.filter(deleted_at__isnull=False)


class UserManager(DjangoUserManager):
    def active(self):
        return self.filter(deleted_at__isnull=True)


# --- User Model ---
class User(AbstractUser):
    email = models.EmailField(unique=True)
    role = models.CharField(max_length=10, choices=Role.choices, default=Role.USER)
    # Loyalty balance, credited on purchase and moved by point transfers
    point = models.BigIntegerField(default=0)
    image = models.FileField(upload_to=user_image_path, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    deleted_at = models.DateTimeField(blank=True, null=True)

    objects = UserManager()

    class Meta:
        constraints = [
            models.CheckConstraint(condition=Q(point__gte=0), name="user_point_non_negative"),
        ]

    @property
    def is_admin(self):
        return self.role == Role.ADMIN

    def __str__(self):
        return self.email or self.username


# --- Product Model ---
class Product(models.Model):
    name = models.CharField(max_length=200)
    desc = models.TextField(blank=True, default="")
    # Integer currency units
    price = models.PositiveIntegerField(help_text="Unit price, must be positive.")
    stock = models.IntegerField(default=0, help_text="Stock quantity, cannot be negative.")
    image = models.FileField(upload_to=product_image_path, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    deleted_at = models.DateTimeField(blank=True, null=True)

    objects = ActiveQuerySet.as_manager()

    class Meta:
        constraints = [
            models.CheckConstraint(condition=Q(stock__gte=0), name="product_stock_non_negative"),
        ]

    def __str__(self):
        return self.name


# --- Order Model ---
class Order(models.Model):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="orders")
    # Written once, after every line item has been priced
    total_price = models.BigIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"Order {self.pk} for {self.user_id}"


# --- OrderItem Model ---
class OrderItem(models.Model):
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="order_items")
    quantity = models.PositiveIntegerField()
    # Price snapshot taken when the order was validated
    unit_price = models.BigIntegerField()
    total_price = models.BigIntegerField()

    def __str__(self):
        return f"{self.quantity} x {self.product_id} (order {self.order_id})"
