"""tiered-fileio - read-through path mapping for table storage.

This package provides:
- A file IO wrapper that serves canonical object-store reads from a cache tier
- An S3-compatible delegate file IO built on boto3
- A small CLI for inspecting how locations are mapped
"""

__version__ = "0.1.0"
