"""Error taxonomy for the storefront cache.

Precondition errors (``Unauthenticated``, ``EmptyCart``, ``InvalidQuantity``,
``CartLineNotFound``) are raised to the caller. Remote failures
(``RemoteWriteFailed``, ``RemoteReadFailed``) are caught at the component
boundary and returned inside a ``MutationResult`` after reconciliation.
"""

from typing import Any


class StorefrontError(Exception):
    """Base error carrying a machine readable code and a user-facing message."""

    code = "STOREFRONT_ERROR"
    default_message = "Something went wrong"

    def __init__(self, message: str | None = None, *, details: dict[str, Any] | None = None) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class Unauthenticated(StorefrontError):
    code = "UNAUTHENTICATED"
    default_message = "Please sign in to continue"


class EmptyCart(StorefrontError):
    code = "EMPTY_CART"
    default_message = "Your cart is empty"


class InvalidQuantity(StorefrontError, ValueError):
    """Quantity below one. Removing a line goes through ``remove_from_cart``."""

    code = "INVALID_QUANTITY"
    default_message = "Quantity must be a positive integer"


class CartLineNotFound(StorefrontError, LookupError):
    code = "CART_LINE_NOT_FOUND"
    default_message = "Cart line not found"


class RemoteWriteFailed(StorefrontError):
    """A write was rejected or never reached the store. Transient and retryable."""

    code = "REMOTE_WRITE_FAILED"
    default_message = "Could not save your changes, please try again"


class RemoteReadFailed(StorefrontError):
    """A read failed. Local state keeps its last-known value."""

    code = "REMOTE_READ_FAILED"
    default_message = "Could not refresh, showing the last known data"
