"""Exceptions raised by the token VM modules."""

from __future__ import annotations


class TokenVMError(Exception):
    """Base class for every error the package raises."""

    message = "token vm error"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail
        text = self.message if not detail else f"{self.message}: {detail}"
        super().__init__(text)


class TxNotFoundError(TokenVMError):
    """The requested transaction is not known."""

    message = "tx not found"


class AssetNotFoundError(TokenVMError):
    """The requested asset does not exist."""

    message = "asset not found"


class InvalidBalanceError(TokenVMError):
    """A balance or loan update would overflow or underflow."""

    message = "invalid balance"


class AddressError(TokenVMError, ValueError):
    """An address could not be encoded or parsed."""

    message = "invalid address"