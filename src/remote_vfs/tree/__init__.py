"""Node tree: attach/detach lifecycle, listing reconciliation, file systems."""
