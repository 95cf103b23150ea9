"""inventory_shared — Shared utilities for the inventory Lambda functions.

Provides:
    - Bearer JWT verification with scope checks (Auth0-style issuer/audience)
    - Blob store capability (S3 and in-memory)
    - HTTP response helpers with CORS
    - JSON document (de)serialization and structured logging
"""

__version__ = "1.0.0"
