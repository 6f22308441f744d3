"""Integration tests for Azure Blob Storage connectivity.

These tests require a real storage account and are skipped in CI/CD unless
the AzureWebJobsStorage and RV_CONTAINER environment variables are set.
"""

import os
import uuid

import pytest

pytestmark = pytest.mark.skipif(
    not (os.getenv("AzureWebJobsStorage") and os.getenv("RV_CONTAINER")),
    reason="Real Azure storage credentials not available",
)


def test_write_list_read_delete_real() -> None:
    """Round-trip a small folder tree through a real container.

    Writes a file under a unique folder, lists the folder, reads the file
    back with a random-access seek, then deletes the whole subtree.
    """
    from remote_vfs.backend.azure_blob import azure_blob_backend_from_config
    from remote_vfs.config import load_config
    from remote_vfs.names.parser import parse_name
    from remote_vfs.tree.filesystem import RemoteFileSystem

    config = load_config()
    backend = azure_blob_backend_from_config(config)
    fs = RemoteFileSystem(parse_name(f"azblob://{config.container}"), backend, config)

    folder = fs.resolve_file(f"/rv-it-{uuid.uuid4().hex}")
    folder.create_folder()
    try:
        folder.get_child("a.txt").write_bytes(b"0123456789")

        assert folder.list_children() == ["a.txt"]
        with folder.get_child("a.txt").open_random_access() as content:
            content.seek(6)
            assert content.read() == b"6789"
    finally:
        folder.delete_all()
