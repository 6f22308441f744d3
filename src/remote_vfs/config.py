"""File system configuration loaded from environment variables."""

import os
from dataclasses import dataclass

DEFAULT_DELIMITER = "/"
DEFAULT_HOST = "localhost"
DEFAULT_LIST_PAGE_SIZE = 1000


@dataclass(frozen=True)
class VfsConfig:
    """Explicit configuration threaded through a node tree and its backend.

    Every field has a default so that an in-memory tree can be built with
    ``VfsConfig()``. Backend factories validate the fields they need and fail
    when those are missing.
    """

    # Tree behaviour
    delimiter: str = DEFAULT_DELIMITER
    default_host: str = DEFAULT_HOST
    list_page_size: int = DEFAULT_LIST_PAGE_SIZE

    # Azure Blob Storage backend
    storage_connection_string: str | None = None
    container: str | None = None
    encryption_scope: str | None = None

    # OneDrive (Microsoft Graph) backend
    client_id: str | None = None
    client_secret: str | None = None
    tenant_id: str | None = None
    drive_user: str | None = None


def load_config() -> VfsConfig:
    """Construct a VfsConfig from environment variables.

    Optional environment variables (with defaults):
        RV_DELIMITER: Key separator used for prefix/delimiter listings (default: "/").
        RV_DEFAULT_HOST: Host substituted into addresses with an empty host
            (default: "localhost").
        RV_LIST_PAGE_SIZE: Maximum entries requested per listing page (default: 1000).
        AzureWebJobsStorage: Azure Storage account connection string.
        RV_CONTAINER: Blob container backing the "azblob" scheme.
        RV_ENCRYPTION_SCOPE: Azure encryption scope applied to written objects.
        RV_CLIENT_ID: Azure AD application (client) ID for OneDrive access.
        RV_CLIENT_SECRET: Azure AD application client secret.
        RV_TENANT_ID: Azure AD tenant ID.
        RV_DRIVE_USER: UPN or object ID of the OneDrive user.

    Returns:
        Configured VfsConfig instance.
    """
    return VfsConfig(
        delimiter=os.environ.get("RV_DELIMITER", DEFAULT_DELIMITER),
        default_host=os.environ.get("RV_DEFAULT_HOST", DEFAULT_HOST),
        list_page_size=int(os.environ.get("RV_LIST_PAGE_SIZE", str(DEFAULT_LIST_PAGE_SIZE))),
        storage_connection_string=os.environ.get("AzureWebJobsStorage"),  # noqa: SIM112
        container=os.environ.get("RV_CONTAINER"),
        encryption_scope=os.environ.get("RV_ENCRYPTION_SCOPE"),
        client_id=os.environ.get("RV_CLIENT_ID"),
        client_secret=os.environ.get("RV_CLIENT_SECRET"),
        tenant_id=os.environ.get("RV_TENANT_ID"),
        drive_user=os.environ.get("RV_DRIVE_USER"),
    )
