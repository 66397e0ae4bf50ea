"""
Read/write routing.

Every logical operation runs on one of two physical store handles: the write
handle (primary) or the read handle (replica). The decision is made per call:

    WRITE  if explicit_write or force_write
           or (auto_route_on_transaction and the write handle has an open
               transaction)
    READ   otherwise

Mutations and transaction control always ask for WRITE. Plain reads ask for
READ and get promoted while a transaction is open, so a transaction sees its
own uncommitted rows.
"""

from __future__ import annotations

from enum import Enum

from .store.base import Store


class Route(Enum):
    """Physical path an operation runs on."""

    READ = "read"
    WRITE = "write"


def select_route(
    explicit_write: bool,
    force_write: bool,
    transaction_open: bool,
    auto_route_on_transaction: bool,
) -> Route:
    """Pure routing decision."""
    if explicit_write or force_write:
        return Route.WRITE
    if auto_route_on_transaction and transaction_open:
        return Route.WRITE
    return Route.READ


class RouteSelector:
    """Routing state for one model instance.

    Attributes:
        write_store: Handle whose transaction state drives auto routing
        force_write: Route everything to the write handle until reset
        auto_route_on_transaction: Promote reads while a transaction is open
    """

    def __init__(
        self,
        write_store: Store,
        force_write: bool = False,
        auto_route_on_transaction: bool = True,
    ) -> None:
        self.write_store = write_store
        self.force_write = force_write
        self.auto_route_on_transaction = auto_route_on_transaction

    def choose(self, write: bool = False) -> Route:
        return select_route(
            explicit_write=write,
            force_write=self.force_write,
            transaction_open=self.write_store.transaction_status(),
            auto_route_on_transaction=self.auto_route_on_transaction,
        )
