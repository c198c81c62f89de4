"""
cardsafe - encrypted backup and restore for ID-card records.

Snapshots the users, card templates, login credentials and predefined
field definitions of an ID-card record store into a single
password-encrypted file, and merges such files back into a live database.

Key Features:
    - AES-256-GCM envelope keyed by PBKDF2-HMAC-SHA512 of the backup password
    - Additive restore with per-record failure isolation
    - Retention policy keeping the N most recent backups
    - Optional scheduled auto-backup via cron
"""

__version__ = "0.1.0"

from cardsafe.config.settings import Settings, load_config

__all__ = [
    "__version__",
    "Settings",
    "load_config",
]
