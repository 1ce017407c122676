"""Exceptions raised by the token VM storage, encoding and RPC layers."""

from __future__ import annotations


class TokenVMError(Exception):
    """Base class for every error raised by this package."""


class TxNotFoundError(TokenVMError, LookupError):
    """A transaction is not known to the node."""

    def __init__(self, message: str = "tx not found") -> None:
        super().__init__(message)


class AssetNotFoundError(TokenVMError, LookupError):
    """An asset is not known to the node."""

    def __init__(self, message: str = "asset not found") -> None:
        super().__init__(message)


class InvalidBalanceError(TokenVMError, ValueError):
    """A balance or loan update would overflow or go below zero."""

    base_message = "invalid balance"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail
        message = f"{self.base_message}: {detail}" if detail else self.base_message
        super().__init__(message)


class InvalidAddressError(TokenVMError, ValueError):
    """An address string could not be decoded into a public key."""

    def __init__(self, message: str = "invalid address") -> None:
        super().__init__(message)