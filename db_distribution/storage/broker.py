"""
Credential broker for backup artifacts.

Issues short-lived SAS URLs that grant exactly one permission on exactly one
blob. TTL policy belongs to the caller; the broker only signs.

Design principle: the signing context (service client plus key material) is
built once per process and shared by every request.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import structlog
from azure.core.exceptions import AzureError
from azure.identity import DefaultAzureCredential
from azure.storage.blob import BlobSasPermissions, BlobServiceClient, generate_blob_sas

from ..config import Settings, get_settings
from ..errors import Unavailable
from ..primitives import utc_now
from .keys import object_key_filename

logger = structlog.get_logger(__name__)


class StorageConfigurationError(Unavailable):
    """Storage settings are missing or unusable; credentials cannot be issued."""


class CredentialBroker(ABC):
    """Abstract base class for storage credential issuance."""

    @abstractmethod
    def issue_read_url(self, key: str, ttl: timedelta) -> str:
        """Return a read-only URL for ``key`` valid for ``ttl``."""
        pass

    @abstractmethod
    def issue_write_url(self, key: str, ttl: timedelta) -> str:
        """Return a create/write URL for ``key`` valid for ``ttl``."""
        pass

    @abstractmethod
    def check_ready(self) -> None:
        """Raise ``Unavailable`` if the storage backend cannot be reached."""
        pass


def extract_connection_setting(connection_string: str, name: str) -> Optional[str]:
    """Read one ``Name=value`` pair from an Azure storage connection string."""
    for segment in connection_string.split(";"):
        key, sep, value = segment.partition("=")
        if sep and key.strip().lower() == name.lower():
            return value.strip()
    return None


@dataclass(frozen=True)
class SigningContext:
    """Immutable once built. ``account_key`` is None under managed identity."""

    service_client: BlobServiceClient
    account_name: str
    account_key: Optional[str] = None

    @property
    def uses_delegation(self) -> bool:
        return self.account_key is None


class AzureBlobCredentialBroker(CredentialBroker):
    """SAS issuance against Azure Blob Storage.

    With ``USE_MANAGED_IDENTITY`` the SAS is signed with a user delegation
    key obtained through ``DefaultAzureCredential``; otherwise the account
    key from the connection string signs it.

    Thread safety: ``_context`` is written once under ``_lock`` and only read
    afterwards.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.container = self.settings.azure_storage_container
        self.timeout = self.settings.storage_timeout_seconds
        self.clock_skew = timedelta(minutes=self.settings.sas_clock_skew_minutes)
        self._context: Optional[SigningContext] = None
        self._lock = threading.Lock()

    def _client_options(self) -> dict:
        return {
            "connection_timeout": self.timeout,
            "read_timeout": self.timeout,
        }

    def _build_context(self) -> SigningContext:
        settings = self.settings

        if settings.use_managed_identity:
            account = settings.azure_storage_account
            if not account:
                raise StorageConfigurationError(
                    "AZURE_STORAGE_ACCOUNT is required when USE_MANAGED_IDENTITY is true"
                )
            client = BlobServiceClient(
                account_url=f"https://{account}.blob.core.windows.net",
                credential=DefaultAzureCredential(),
                **self._client_options(),
            )
            return SigningContext(service_client=client, account_name=account)

        connection_string = settings.azure_storage_connection_string
        if not connection_string:
            raise StorageConfigurationError(
                "AZURE_STORAGE_CONNECTION_STRING is required when USE_MANAGED_IDENTITY is false"
            )
        account_key = extract_connection_setting(connection_string, "AccountKey")
        if not account_key:
            raise StorageConfigurationError(
                "Connection string missing AccountKey; cannot generate SAS"
            )
        account_name = (
            extract_connection_setting(connection_string, "AccountName")
            or settings.azure_storage_account
        )
        client = BlobServiceClient.from_connection_string(
            connection_string, **self._client_options()
        )
        return SigningContext(
            service_client=client, account_name=account_name, account_key=account_key
        )

    def _get_context(self) -> SigningContext:
        context = self._context
        if context is None:
            with self._lock:
                if self._context is None:
                    self._context = self._build_context()
                    logger.info(
                        "Storage signing context initialized",
                        account=self._context.account_name,
                        container=self.container,
                        delegation=self._context.uses_delegation,
                    )
                context = self._context
        return context

    def _issue(
        self,
        key: str,
        permission: BlobSasPermissions,
        ttl: timedelta,
        content_disposition: Optional[str] = None,
    ) -> str:
        context = self._get_context()
        now = utc_now()
        starts_on = now - self.clock_skew
        expires_on = now + ttl

        extra = {}
        if content_disposition:
            extra["content_disposition"] = content_disposition

        try:
            if context.uses_delegation:
                delegation_key = context.service_client.get_user_delegation_key(
                    key_start_time=starts_on,
                    key_expiry_time=expires_on,
                    timeout=self.timeout,
                )
                sas = generate_blob_sas(
                    account_name=context.account_name,
                    container_name=self.container,
                    blob_name=key,
                    user_delegation_key=delegation_key,
                    permission=permission,
                    expiry=expires_on,
                    start=starts_on,
                    **extra,
                )
            else:
                sas = generate_blob_sas(
                    account_name=context.account_name,
                    container_name=self.container,
                    blob_name=key,
                    account_key=context.account_key,
                    permission=permission,
                    expiry=expires_on,
                    start=starts_on,
                    **extra,
                )
        except AzureError as exc:
            logger.error(
                "Failed to issue storage credential",
                object_key=key,
                permission=str(permission),
                error=str(exc),
            )
            raise Unavailable("Storage credential service unavailable") from exc

        blob_url = context.service_client.get_blob_client(self.container, key).url
        return f"{blob_url}?{sas}"

    def issue_read_url(self, key: str, ttl: timedelta) -> str:
        filename = object_key_filename(key)
        return self._issue(
            key,
            BlobSasPermissions(read=True),
            ttl,
            content_disposition=f"attachment; filename={filename}",
        )

    def issue_write_url(self, key: str, ttl: timedelta) -> str:
        return self._issue(key, BlobSasPermissions(create=True, write=True), ttl)

    def check_ready(self) -> None:
        context = self._get_context()
        try:
            context.service_client.get_container_client(
                self.container
            ).get_container_properties(timeout=self.timeout)
        except AzureError as exc:
            logger.error(
                "Storage container not reachable",
                container=self.container,
                error=str(exc),
            )
            raise Unavailable("Storage not reachable") from exc


_broker: Optional[CredentialBroker] = None
_broker_lock = threading.Lock()


def get_credential_broker() -> CredentialBroker:
    """Process-wide broker (FastAPI dependency)."""
    global _broker
    if _broker is None:
        with _broker_lock:
            if _broker is None:
                _broker = AzureBlobCredentialBroker()
    return _broker
