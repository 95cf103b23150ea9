"""inventory_shared.aws_clients — Lazy-singleton AWS service clients.

The S3 client is created on first use and cached for the life of the
execution environment, so cold starts that only answer OPTIONS or hit the
in-memory store never construct it.
"""

from __future__ import annotations

from typing import Optional

import boto3
from botocore.config import Config

from inventory_shared import config

# ---------------------------------------------------------------------------
# Client singletons
# ---------------------------------------------------------------------------

_s3 = None


def _get_s3(region: Optional[str] = None):
    """Get (or create) the S3 client singleton."""
    global _s3
    if _s3 is None:
        _s3 = boto3.client(
            "s3",
            region_name=region or config.STORE_REGION,
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
        )
    return _s3
