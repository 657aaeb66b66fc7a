"""
Domain errors raised by the inventory services.

Routes never build HTTP errors for domain failures themselves; main.py maps
every PharmacyError to {"error": detail} with the class's status code.
"""
from fastapi import status


class PharmacyError(Exception):
    """Base class for every failure a workflow reports to its caller."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class Unauthorized(PharmacyError):
    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(PharmacyError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(PharmacyError):
    status_code = status.HTTP_404_NOT_FOUND


class ValidationError(PharmacyError):
    status_code = status.HTTP_400_BAD_REQUEST


class InsufficientStock(PharmacyError):
    """Ledger quantity would go negative."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, medicine_name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for {medicine_name}. Available: {available}, requested: {requested}"
        )
        self.medicine_name = medicine_name
        self.available = available
        self.requested = requested


class InsufficientBalance(PharmacyError):
    """Controlled substance register balance would go negative."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, medicine_name: str, balance: int, quantity_out: int):
        super().__init__(
            f"Insufficient register balance for {medicine_name}. Current: {balance}, attempting to remove: {quantity_out}"
        )
        self.balance = balance
        self.quantity_out = quantity_out


class InvalidTransition(PharmacyError):
    status_code = status.HTTP_409_CONFLICT


class DuplicateRecord(PharmacyError):
    status_code = status.HTTP_409_CONFLICT
