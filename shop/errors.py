"""
Error taxonomy raised by the shop services.

Every error carries the HTTP status it maps to and an optional list of
detail dicts, so the REST and GraphQL boundaries can render it without
knowing which service raised it.
"""


class ShopError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message=None, details=None):
        self.message = message or self.default_message
        self.details = list(details or [])
        super().__init__(self.message)

    def as_dict(self):
        return {"error": self.message, "details": self.details}


class ValidationError(ShopError):
    """Malformed input; details hold ``{"path": [...], "msg": ...}`` issues."""

    status_code = 400
    default_message = "Invalid request body"


class NotFoundError(ShopError):
    status_code = 404
    default_message = "Not found"


class InsufficientStockError(ShopError):
    status_code = 400
    default_message = "Not enough stock"

    def __init__(self, product, requested=None):
        self.product = product
        details = [{"productId": product.pk, "stock": product.stock, "requested": requested}]
        super().__init__(f"Not enough stock for product {product.name}", details)


class InsufficientPointsError(ShopError):
    status_code = 400
    default_message = "Insufficient points"


class ConflictError(ShopError):
    """A concurrent write changed a row between validation and commit."""

    status_code = 409
    default_message = "Conflicting concurrent update"


class FileTooLargeError(ShopError):
    status_code = 413
    default_message = "File too large, max 3MB"


class InvalidFileTypeError(ShopError):
    status_code = 422
    default_message = "Invalid file type"
