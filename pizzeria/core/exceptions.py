"""
Pizzeria — Error taxonomy

Validation errors are raised before anything is persisted.
Persistence errors leave state as last reconciled.
Side-effect errors (email, payment) never roll back a persisted transition.
"""


class PizzeriaError(Exception):
    """Base class for every error raised by the service layer."""


class InvalidRequest(PizzeriaError):
    """Malformed input to a pricing call, transition or order creation."""


class OrderNotFound(PizzeriaError):
    def __init__(self, order_id: str):
        super().__init__(f"Order '{order_id}' not found.")
        self.order_id = order_id


class PersistenceError(PizzeriaError):
    """A read or write against the database failed."""


class SideEffectError(PizzeriaError):
    """An outbound call (email, payment session) failed."""


class ChangeFeedError(PizzeriaError):
    """The change-feed subscription closed or errored."""
