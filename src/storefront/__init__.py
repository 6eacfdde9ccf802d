"""Storefront client cache: cart and order state for one customer session.

The remote data store is authoritative. The cart cache and the order tracker
keep disposable in-memory views of it, apply mutations optimistically and
reconcile by reloading whenever a write fails or a change notification
arrives.
"""

from storefront.session import StorefrontSession

__version__ = "0.1.0"

__all__ = ["StorefrontSession", "__version__"]
