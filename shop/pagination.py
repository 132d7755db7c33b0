from rest_framework.pagination import BasePagination
from rest_framework.response import Response

from .querying import paginate, paginated, parse_page_params


class LimitPagePagination(BasePagination):
    """
    ``?page=&limit=`` pagination answering ``{limit, page, total, data}``.

    Pages past the end come back empty instead of raising 404.
    """

    def paginate_queryset(self, queryset, request, view=None):
        self.page, self.limit = parse_page_params(request.query_params)
        self.total = queryset.count()
        return paginate(queryset, self.page, self.limit)

    def get_paginated_response(self, data):
        return Response(paginated(self.page, self.limit, self.total, data))
