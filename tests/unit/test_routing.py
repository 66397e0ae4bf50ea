"""
Unit tests for read/write routing.

Tests cover:
- The pure routing decision over every input
- Transaction-driven promotion of reads
- RouteSelector reading the write handle's transaction state
"""

import itertools

import pytest

from dbaas.tablecache.routing import Route, RouteSelector, select_route


class FakeWriteStore:
    """Write handle stub exposing only transaction state."""

    def __init__(self, in_transaction=False):
        self.in_transaction = in_transaction

    def transaction_status(self):
        return self.in_transaction


class TestSelectRoute:
    """Tests for select_route()."""

    @pytest.mark.parametrize(
        "explicit_write,force_write,transaction_open,auto_route",
        list(itertools.product([False, True], repeat=4)),
    )
    def test_decision_table(self, explicit_write, force_write, transaction_open, auto_route):
        expected = (
            Route.WRITE
            if explicit_write or force_write or (auto_route and transaction_open)
            else Route.READ
        )
        assert select_route(explicit_write, force_write, transaction_open, auto_route) is expected

    def test_plain_read_in_transaction_goes_to_write(self):
        assert select_route(False, False, True, True) is Route.WRITE

    def test_plain_read_in_transaction_without_auto_route(self):
        assert select_route(False, False, True, False) is Route.READ

    def test_plain_read_outside_transaction(self):
        assert select_route(False, False, False, True) is Route.READ


class TestRouteSelector:
    """Tests for RouteSelector."""

    def test_mutation_always_writes(self):
        selector = RouteSelector(FakeWriteStore())
        assert selector.choose(write=True) is Route.WRITE

    def test_follows_transaction_state(self):
        store = FakeWriteStore()
        selector = RouteSelector(store)

        assert selector.choose() is Route.READ
        store.in_transaction = True
        assert selector.choose() is Route.WRITE
        store.in_transaction = False
        assert selector.choose() is Route.READ

    def test_auto_route_disabled(self):
        selector = RouteSelector(FakeWriteStore(in_transaction=True), auto_route_on_transaction=False)
        assert selector.choose() is Route.READ

    def test_force_write_toggle(self):
        selector = RouteSelector(FakeWriteStore())

        selector.force_write = True
        assert selector.choose() is Route.WRITE
        selector.force_write = False
        assert selector.choose() is Route.READ
