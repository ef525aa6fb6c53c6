"""S3-compatible backend built on aioboto3."""

from .backend import S3ObjectStore

__all__ = ["S3ObjectStore"]
