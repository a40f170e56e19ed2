"""
Error taxonomy for the key-management and collaboration core.

Every error carries an opaque ``code`` and nothing else of substance:
no key material, no plaintext. Messages name ids, never content.
"""

from __future__ import annotations


class SkDocsError(Exception):
    """Base class for all skdocs errors."""

    code = "SKDOCS_ERROR"
    retryable = False

    def __init__(self, message: str = "") -> None:
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class KeyGenerationFailed(SkDocsError):
    """The system random source could not produce a document key."""

    code = "KEY_GENERATION_FAILED"


class KeyDecodeFailed(SkDocsError):
    """An encoded key was malformed or had the wrong length."""

    code = "KEY_DECODE_FAILED"


class AuthenticationFailed(SkDocsError):
    """Ciphertext failed authentication (tampered, corrupted, or wrong key)."""

    code = "AUTHENTICATION_FAILED"


class RecipientKeyUnavailable(SkDocsError):
    """The recipient has not published an ephemeral public key yet."""

    code = "RECIPIENT_KEY_UNAVAILABLE"
    retryable = True


class PermissionDenied(SkDocsError):
    """The acting user is not allowed to perform this operation."""

    code = "PERMISSION_DENIED"


class InvalidBranchState(SkDocsError):
    """The branch is not in a state that allows this transition."""

    code = "INVALID_BRANCH_STATE"


class DocumentNotFound(SkDocsError):
    """No document (or branch) exists under the given id."""

    code = "DOCUMENT_NOT_FOUND"


class CorruptBranch(SkDocsError):
    """A branch payload could not be decrypted under its document key."""

    code = "CORRUPT_BRANCH"


class StorageError(SkDocsError):
    """The storage layer refused or failed a write."""

    code = "STORAGE_ERROR"
