"""
Configuration module for OrderGuard.

Centralizes all configuration with environment variable support
and validation.
"""

import os
from typing import Dict

# ============================================================
# Environment Configuration
# ============================================================

ENV = os.getenv("ORDERGUARD_ENV", "dev")  # dev|stage|prod

# Asymmetric keys (RSA modulus size in bits)
MIN_RSA_KEY_SIZE = 2048
RSA_KEY_SIZE = int(os.getenv("ORDERGUARD_RSA_KEY_SIZE", "4096"))

# Per-client order history
HISTORY_CAPACITY = int(os.getenv("ORDERGUARD_HISTORY_CAPACITY", "100"))

# Registry limit (0 = unlimited)
MAX_CLIENTS = int(os.getenv("ORDERGUARD_MAX_CLIENTS", "0"))

# Logging
LOG_LEVEL = os.getenv("ORDERGUARD_LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("ORDERGUARD_LOG_JSON", "true").lower() in ("1", "true", "yes")


# ============================================================
# Validation
# ============================================================

def validate_config() -> Dict[str, bool]:
    """
    Validate the effective configuration.
    Returns dict of check -> passed.
    """
    return {
        "rsa_key_size": RSA_KEY_SIZE >= MIN_RSA_KEY_SIZE,
        "history_capacity": HISTORY_CAPACITY > 0,
        "max_clients": MAX_CLIENTS >= 0,
        "env": ENV in ("dev", "stage", "prod"),
    }


# ============================================================
# Feature Flags
# ============================================================

def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return os.getenv("ORDERGUARD_DEBUG", "").lower() in ("1", "true", "yes")
