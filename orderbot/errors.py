# orderbot/errors.py
from __future__ import annotations


class OrderBotError(Exception):
    """Base class for errors raised by the ordering bot."""


class StoreError(OrderBotError):
    """An external store (orders, history, verifications) failed."""


class CatalogError(StoreError):
    """The menu catalog could not be loaded and no cached copy exists."""


class DuplicateOrderCode(StoreError):
    """An order with the same code was stored concurrently."""


class OrderCodeError(OrderBotError):
    """No unused order code could be generated within the attempt budget."""


class TransportError(OrderBotError):
    """The chat transport refused or failed to deliver a message."""
