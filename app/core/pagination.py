from flask import request, url_for


class PaginatedResult:

    def __init__(self, query, page=1, per_page=10, error_out=False):
        self.query = query
        self.page = page
        self.per_page = per_page

        self.pagination = query.paginate(
            page=page, per_page=per_page, error_out=error_out
        )

    @property
    def items(self):
        """Get current page items"""
        return self.pagination.items

    @property
    def total(self):
        """Get total number of items"""
        return self.pagination.total

    def to_dict(self, schema, endpoint=None, **kwargs):
        result = {
            "count": self.pagination.total,
            "next": None,
            "previous": None,
            "items": schema.dump(self.items),
        }

        if endpoint:
            params = kwargs.copy()
            params["per_page"] = self.per_page
            params.update(
                {k: v for k, v in request.args.items() if k not in ("page", "per_page")}
            )

            if self.pagination.has_next:
                params["page"] = self.page + 1
                result["next"] = url_for(endpoint, **params, _external=True)

            if self.pagination.has_prev:
                params["page"] = self.page - 1
                result["previous"] = url_for(endpoint, **params, _external=True)

        return result


def paginate(query, schema, endpoint=None, **kwargs):
    page = kwargs.pop("page", request.args.get("page", 1, type=int))
    per_page = kwargs.pop("per_page", request.args.get("per_page", 10, type=int))

    # Between 1 and 100
    per_page = min(max(per_page, 1), 100)

    paginated_result = PaginatedResult(query, page, per_page)
    return paginated_result.to_dict(schema, endpoint, **kwargs)
