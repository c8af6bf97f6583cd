"""
Shared helper utilities for CDK stack construction.

This module provides:
- Region abbreviation mapping for resource naming
- Resource naming function (rn)
- Lambda environment settings read at synth time
"""

import os
from typing import Callable, Optional

# Region abbreviation mapping for resource naming
# Pattern: {name}-{region_abbrev}-{env} e.g. cachao-ew1-dev
REGION_ABBREVIATIONS: dict[str, str] = {
    "us-east-1": "ue1",
    "us-east-2": "ue2",
    "us-west-1": "uw1",
    "us-west-2": "uw2",
    "eu-west-1": "ew1",
    "eu-west-2": "ew2",
    "eu-west-3": "ew3",
    "eu-central-1": "ec1",
    "eu-north-1": "en1",
    "eu-south-2": "es2",  # Spain
    "sa-east-1": "se1",  # Sao Paulo
    "ca-central-1": "cc1",  # Canada
}

# Settings copied from the deploy environment into every function
PASSTHROUGH_SETTINGS = (
    "DB_HOST",
    "DB_PORT",
    "DB_USER",
    "DB_PASSWORD",
    "DB_NAME",
    "STRIPE_SECRET_KEY",
    "STRIPE_WEBHOOK_SECRET",
    "STRIPE_API_VERSION",
    "FRONTEND_URL",
)


def get_region() -> str:
    """Get the AWS region from environment variables or default to eu-west-1."""
    return os.getenv("AWS_REGION") or os.getenv("CDK_DEFAULT_REGION") or "eu-west-1"


def get_region_abbrev(region: Optional[str] = None) -> str:
    """Get the region abbreviation for resource naming.

    Args:
        region: AWS region code. If None, reads from environment.

    Returns:
        Region abbreviation (e.g., 'ew1' for 'eu-west-1')
    """
    if region is None:
        region = get_region()
    return REGION_ABBREVIATIONS.get(region, region[:3])


def make_resource_namer(region_abbrev: str, env_name: str) -> Callable[[str], str]:
    """Create a resource naming function.

    Args:
        region_abbrev: Region abbreviation (e.g., 'ew1')
        env_name: Environment name (e.g., 'dev', 'prod')

    Returns:
        A function that takes a base name and returns a fully qualified name
    """

    def rn(name: str, abbrev: str = region_abbrev, env: str = env_name) -> str:
        """Generate resource name with region and environment suffix."""
        return f"{name}-{abbrev}-{env}"

    return rn


def passthrough_environment() -> dict[str, str]:
    """Deploy-time settings that are set, keyed by their Lambda variable name."""
    return {name: os.environ[name] for name in PASSTHROUGH_SETTINGS if os.getenv(name)}
