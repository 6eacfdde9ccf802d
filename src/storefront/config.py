"""Runtime configuration for a storefront session."""

import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, ConfigDict, field_validator

_ENVIRONMENTS = {"development", "staging", "production", "test"}


class StorefrontConfig(BaseModel):
    """Settings shared by every component of a session.

    Collection names default to the hosted store's table names and only need
    overriding when the store is provisioned with a prefix.
    """

    model_config = ConfigDict(frozen=True)

    environment: str = "development"
    log_level: str | None = None
    cart_collection: str = "cart"
    orders_collection: str = "orders"
    menu_collection: str = "menu"
    session_file: Path | None = None

    @field_validator("environment")
    @classmethod
    def environment_must_be_known(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in _ENVIRONMENTS:
            raise ValueError(f"Unknown environment: {value!r}")
        return value

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "StorefrontConfig":
        env = os.environ if environ is None else environ
        values = {
            "environment": env.get("STOREFRONT_ENV") or env.get("ENVIRONMENT") or "development",
            "log_level": env.get("LOG_LEVEL") or None,
            "cart_collection": env.get("STOREFRONT_CART_COLLECTION", "cart"),
            "orders_collection": env.get("STOREFRONT_ORDERS_COLLECTION", "orders"),
            "menu_collection": env.get("STOREFRONT_MENU_COLLECTION", "menu"),
            "session_file": env.get("STOREFRONT_SESSION_FILE") or None,
        }
        return cls(**values)
