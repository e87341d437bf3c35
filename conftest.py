"""Pytest configuration for easysql tests.

This module provides global pytest configuration and custom warning filters.
"""

import warnings

# paramiko still imports TripleDES/Blowfish ciphers that newer cryptography
# releases flag as deprecated on import
warnings.filterwarnings(
    "ignore",
    message=r".*(TripleDES|Blowfish).*",
)
