"""Shared BDD fixtures and step definitions for the storefront cache."""

import pytest
from pytest_bdd import given, parsers


@pytest.fixture
def outcome():
    """Holds results and errors produced by When steps."""
    return {}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("a signed-in customer")
def _signed_in(provider, cart, run):
    assert provider.current_identity() is not None
    run(cart.load())


@given(parsers.cfparse('the customer has {quantity:d} of "{item_id}" in the cart'))
def _has_in_cart(cart, menu, run, quantity, item_id):
    assert run(cart.add(menu[item_id], quantity)).ok


@given("the store rejects writes")
def _store_rejects_writes(store):
    store.configure(should_succeed=False, failure_reason="Service unavailable")
