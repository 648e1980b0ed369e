"""Error taxonomy for the ingestion pipeline.

Every per-file failure is caught at the file boundary and turned into a
Ledger outcome; these classes carry the message that ends up in the
Ledger's ``error`` field.
"""
from typing import Optional


class IngestError(Exception):
    """Base class for pipeline errors."""


class TransportError(IngestError):
    """Non-success HTTP outcome or network failure."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthenticityError(IngestError):
    """Payload does not carry the compressed-format signature."""

    def __init__(self, message: str, head: str = ""):
        super().__init__(message)
        self.head = head


class IdentityError(IngestError):
    """No store identifier could be resolved for a file."""


class SchemaError(IngestError):
    """Catalog content does not match the expected vendor schema."""


class CatalogError(SchemaError):
    """File-level decode failure (bad signature, missing root, no items)."""


class StorageError(IngestError):
    """Object store read/write failure."""


class BlobExistsError(StorageError):
    """Create-if-absent upload found a different object at the path."""


class BatchWriteError(IngestError):
    """A batch of price rows could not be written."""

    def __init__(self, message: str, written: int = 0):
        super().__init__(message)
        self.written = written


class DiscoveryError(IngestError):
    """Discovery could not produce a URL list."""
