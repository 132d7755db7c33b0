from django.urls import path

from . import views

urlpatterns = [
    path("orders", views.OrderListCreateView.as_view(), name="orders"),
    path("orders/summary", views.OrderSummaryView.as_view(), name="order-summary"),
    path("users/<int:user_id>/orders", views.UserOrderListView.as_view(), name="user-orders"),

    path("products", views.ProductListCreateView.as_view(), name="products"),
    path("products/<int:product_id>", views.ProductDetailView.as_view(), name="product-detail"),
    path("products/<int:product_id>/restore", views.restore_product, name="product-restore"),

    path("users", views.UserListView.as_view(), name="users"),
    path("users/me", views.me, name="me"),
    path("users/me/points/transfer", views.transfer_point, name="transfer-point"),
    path("users/me/image", views.upload_profile_image, name="profile-image"),
    path("users/<int:user_id>", views.user_detail, name="user-detail"),
    path("users/<int:user_id>/activate", views.activate_user, name="user-activate"),
]
