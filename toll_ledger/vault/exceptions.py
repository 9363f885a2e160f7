"""
Custom exceptions for the encrypted storage layer.
"""


class VaultError(Exception):
    """Base exception for secure storage operations."""
    pass


class CryptoUnsupportedError(VaultError):
    """Raised when the host lacks the primitives needed for encryption.

    This is an environment/configuration error. Storage must never fall
    back to plaintext when it is raised.
    """
    pass


class StorageError(VaultError):
    """Exception raised when the underlying storage medium fails."""
    pass


class StorageFullError(StorageError):
    """Exception raised when a write would exceed the medium's quota."""

    def __init__(self, message: str, quota: int):
        """
        Initialize storage full error.

        Args:
            message: Error message
            quota: Size limit of the medium in bytes
        """
        super().__init__(message)
        self.quota = quota


class DecryptionError(VaultError):
    """Raised when an envelope cannot be decoded, authenticated or parsed."""
    pass
