import secrets
from decimal import Decimal, ROUND_HALF_UP

from flask import request, g
from flask_restful import Resource
from app.core.logger import logger
from app.core.pagination import paginate

TWO_PLACES = Decimal("0.01")
HUNDRED = Decimal("100")


def to_money(value):
    """Coerce ``value`` to a two-place Decimal, rounding half up."""
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def percent_of(amount, rate):
    """``rate`` percent of ``amount``, as money."""
    return to_money(to_money(amount) * Decimal(str(rate)) / HUNDRED)


def generate_payment_reference(prefix="SAV"):
    """Unique, human-readable payment reference, e.g. ``SAV-4F1C9A0B7E22D3C1``."""
    return f"{prefix}-{secrets.token_hex(8).upper()}"


class BaseListResource(Resource):
    """
    Base resource class for listing items with common filtering and pagination.
    Subclasses must define:
    - model: The SQLAlchemy model class
    - schema: The marshmallow schema for serialization
    - list_endpoint: Blueprint-qualified endpoint used for page links
      (flask-restful overwrites `endpoint` with the bare name on registration)
    - filters: Mapping of query-string parameter to (column name, enum class)
    """

    model = None
    schema = None
    list_endpoint = None
    filters = {}

    def get_queryset(self, **kwargs):
        """Base queryset - override in subclass if needed."""
        if not self.model:
            raise ValueError("Model must be defined in subclass")
        return self.model.query.order_by(self.model.created_at.desc())

    def apply_filters(self, queryset):
        """Apply enum filters given as query-string parameters."""
        for param, (column, enum_class) in self.filters.items():
            value = request.args.get(param)
            if not value:
                continue
            try:
                member = enum_class(value)
            except ValueError:
                continue
            queryset = queryset.filter(getattr(self.model, column) == member)
        return queryset

    def get(self, **kwargs):
        """Handle GET request with pagination and filtering."""
        if not all([self.model, self.schema, self.list_endpoint]):
            raise ValueError(
                "Model, schema, and list_endpoint must be defined in subclass"
            )

        logger.info(
            f"Fetching {self.model.__tablename__} for user: {g.current_user.id}"
        )
        queryset = self.apply_filters(self.get_queryset(**kwargs))
        result = paginate(
            query=queryset,
            schema=self.schema,
            endpoint=self.list_endpoint,
            **kwargs,
        )
        logger.info(
            f"{self.model.__tablename__} retrieved successfully for user: {g.current_user.id}"
        )
        return result, 200
