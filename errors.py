# Filename: errors.py

"""
Error values raised by the presale client.

Every failure the client detects is a ``PresaleError`` with a closed
``ErrorKind`` and a stable ``code`` so callers can branch without matching on
messages. The constructors below are the only places those codes are spelled.
"""

from enum import Enum
from typing import Any, Dict, Iterable, Optional


class ErrorKind(str, Enum):
    CONFIGURATION = "configuration"
    PRECONDITION = "precondition"
    INSUFFICIENT_RESOURCE = "insufficient_resource"
    ALREADY_SETTLED = "already_settled"
    NOTHING_TO_CLAIM = "nothing_to_claim"
    CHAIN = "chain"


class PresaleError(Exception):
    def __init__(self, kind: ErrorKind, code: str, message: str,
                 operation: Optional[str] = None,
                 presale_id: Optional[int] = None,
                 status: Optional[str] = None,
                 expected: Optional[Iterable[str]] = None,
                 required: Optional[int] = None,
                 available: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.code = code
        self.message = message
        self.operation = operation
        self.presale_id = presale_id
        self.status = status
        self.expected = tuple(expected) if expected is not None else None
        self.required = required
        self.available = available

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "operation": self.operation,
            "presale_id": self.presale_id,
            "status": self.status,
            "expected": list(self.expected) if self.expected is not None else None,
            "required": self.required,
            "available": self.available,
        }
        return {k: v for k, v in data.items() if v is not None}

    def __repr__(self):
        return f"PresaleError(kind={self.kind.value}, code={self.code}, message={self.message!r})"


# ---------- Configuration ----------

def unknown_network(name: str, supported: Iterable[str]) -> PresaleError:
    return PresaleError(
        ErrorKind.CONFIGURATION, "UNKNOWN_NETWORK",
        f"Unknown network: {name}. Supported networks: {', '.join(supported)}",
    )


def unknown_variant(name: str, supported: Iterable[str]) -> PresaleError:
    return PresaleError(
        ErrorKind.CONFIGURATION, "UNKNOWN_VARIANT",
        f"Unknown presale variant: {name}. Supported variants: {', '.join(supported)}",
    )


def no_signer(operation: Optional[str] = None) -> PresaleError:
    return PresaleError(
        ErrorKind.CONFIGURATION, "NO_SIGNER",
        "No signer available. Set PRIVATE_KEY in your .env file or environment.",
        operation=operation,
    )


def unsupported_operation(operation: str, variant: str) -> PresaleError:
    return PresaleError(
        ErrorKind.CONFIGURATION, "UNSUPPORTED_OPERATION",
        f"Operation '{operation}' is not available on the {variant} presale contract",
        operation=operation,
    )


# ---------- Preconditions ----------

def invalid_status(code: str, operation: str, presale_id: int, status: str,
                   expected: Iterable[str]) -> PresaleError:
    expected = tuple(expected)
    return PresaleError(
        ErrorKind.PRECONDITION, code,
        f"Cannot {operation} presale {presale_id}: status is {status}, "
        f"expected {' or '.join(expected)}",
        operation=operation, presale_id=presale_id, status=status, expected=expected,
    )


def invalid_argument(code: str, operation: str, message: str,
                     presale_id: Optional[int] = None) -> PresaleError:
    return PresaleError(
        ErrorKind.PRECONDITION, code, message,
        operation=operation, presale_id=presale_id,
    )


# ---------- Resources ----------

def insufficient(code: str, operation: str, what: str, required: int, available: int,
                 presale_id: Optional[int] = None) -> PresaleError:
    return PresaleError(
        ErrorKind.INSUFFICIENT_RESOURCE, code,
        f"Insufficient {what}: required {required}, available {available}",
        operation=operation, presale_id=presale_id, required=required, available=available,
    )


# ---------- Settlement ----------

def already_claimed(code: str, operation: str, presale_id: int, what: str) -> PresaleError:
    return PresaleError(
        ErrorKind.ALREADY_SETTLED, code,
        f"{what} already claimed for presale {presale_id}",
        operation=operation, presale_id=presale_id,
    )


def nothing_to_claim(code: str, operation: str, presale_id: int, what: str) -> PresaleError:
    return PresaleError(
        ErrorKind.NOTHING_TO_CLAIM, code,
        f"No {what} to claim for presale {presale_id}",
        operation=operation, presale_id=presale_id,
    )


# ---------- Chain / transport ----------

def chain_error(code: str, message: str, operation: Optional[str] = None) -> PresaleError:
    return PresaleError(ErrorKind.CHAIN, code, message, operation=operation)
