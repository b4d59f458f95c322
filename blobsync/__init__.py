"""blobsync - sync endpoint for client-encrypted records."""

__version__ = "0.1.0"
