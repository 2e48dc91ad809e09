"""
Artifact storage: object keys and credential issuance.
"""

from .broker import (
    AzureBlobCredentialBroker,
    CredentialBroker,
    StorageConfigurationError,
    get_credential_broker,
)
from .keys import build_object_key, object_key_filename, validate_object_key

__all__ = [
    "AzureBlobCredentialBroker",
    "CredentialBroker",
    "StorageConfigurationError",
    "build_object_key",
    "get_credential_broker",
    "object_key_filename",
    "validate_object_key",
]
