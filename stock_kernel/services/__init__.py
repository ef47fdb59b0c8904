"""Kernel write services (flush-only; callers own the transaction)."""

from stock_kernel.services.base import BaseService
from stock_kernel.services.item_service import ItemService
from stock_kernel.services.ledger_service import StockLedgerService

__all__ = ["BaseService", "ItemService", "StockLedgerService"]
