from rest_framework.pagination import PageNumberPagination

from kindo_backend.api import api_response


class StandardResultsSetPagination(PageNumberPagination):
    page_size = 10
    page_size_query_param = "per_page"
    max_page_size = 100

    def get_paginated_data(self, results):
        """Page payload placed under the envelope's `data` key."""
        return {
            "results": results,
            "current_page": self.page.number,
            "last_page": self.page.paginator.num_pages,
            "per_page": self.page.paginator.per_page,
            "total": self.page.paginator.count,
            "next": self.get_next_link(),
            "previous": self.get_previous_link(),
        }

    def get_paginated_response(self, data):
        return api_response(True, "Results retrieved successfully.", self.get_paginated_data(data))
