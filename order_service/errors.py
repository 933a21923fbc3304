"""
Error taxonomy of the order service.

Every error raised deliberately by the service derives from `OrderServiceError`
so the API layer can map it to a response without catching unrelated exceptions.
"""


class OrderServiceError(Exception):
    """Base class for all service errors."""


class MissingIdempotencyKey(OrderServiceError):
    """The create-order request did not carry an Idempotency-Key header."""

    def __init__(self):
        super().__init__("Idempotency-Key header is required.")


class PricingLookupError(OrderServiceError):
    """A cached product entry lacks the requested option group or option."""

    def __init__(self, product_id: str, group: str, option: str):
        self.product_id = product_id
        self.group = group
        self.option = option
        super().__init__(
            f"No cached price for product '{product_id}', option group '{group}', option '{option}'."
        )


class DuplicateKey(OrderServiceError):
    """Another request committed the same idempotency key first."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Idempotency key '{key}' already exists.")


class TransactionFailure(OrderServiceError):
    """The atomic order + idempotency record write failed and was rolled back."""


class GatewayError(OrderServiceError):
    """Payment session creation failed. The order itself stays committed."""


class CacheUpdateError(OrderServiceError):
    """A pricing cache update message could not be applied."""
