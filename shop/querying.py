"""Sorting and pagination shared by the REST views and the GraphQL resolvers."""
from django.conf import settings

DEFAULT_ORDERING = ("-created_at",)


def _positive_int(value, default):
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def parse_page_params(params):
    """Reads ``page``/``limit``; missing or invalid values fall back to page 1 and the default size."""
    page = _positive_int(params.get("page"), 1)
    limit = _positive_int(params.get("limit"), settings.SHOP_PAGE_SIZE)
    return page, limit


def paginate(queryset, page, limit):
    offset = (page - 1) * limit
    return list(queryset[offset:offset + limit])


def paginated(page, limit, total, data):
    return {"limit": limit, "page": page, "total": total, "data": data}


def build_ordering(sort_by, columns, fallback=DEFAULT_ORDERING):
    """
    Turns ``"<column>.<asc|desc>"`` into an ``order_by`` list.

    ``columns`` maps the public column name to the ORM expression. Unknown
    columns use ``fallback``; anything but ``asc`` sorts descending.
    """
    if not sort_by:
        return list(fallback)
    column, _, direction = str(sort_by).partition(".")
    field = columns.get(column)
    if field is None:
        return list(fallback)
    prefix = "" if direction == "asc" else "-"
    return [prefix + field]
