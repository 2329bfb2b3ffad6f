from decimal import Decimal
from typing import Optional


class LedgerError(ValueError):
    """Base class for failures returned to the immediate caller of a ledger operation."""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(LedgerError):
    status_code = 404

    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} with ID {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class InsufficientStockError(LedgerError):
    status_code = 400

    def __init__(self, item_name: str, available: Decimal, requested: Decimal):
        super().__init__(
            f"Insufficient stock for {item_name}. Available: {available}, Requested: {requested}"
        )
        self.available = available
        self.requested = requested


class DuplicateAttachmentError(LedgerError):
    status_code = 409

    def __init__(self, site_id: int, catalog_item_id: int):
        super().__init__(
            f"Catalog item {catalog_item_id} is already attached to site {site_id}. Edit the existing record instead."
        )


class InvalidTransitionError(LedgerError):
    status_code = 400


class ConcurrentModificationError(LedgerError):
    status_code = 409

    def __init__(self, balance_id: int, attempts: int, message: Optional[str] = None):
        super().__init__(
            message or f"Balance {balance_id} kept changing concurrently; gave up after {attempts} attempts. Try again."
        )
        self.balance_id = balance_id
        self.attempts = attempts
