"""hostconverge — idempotent service installers for Debian-family hosts."""

__version__ = "0.1.0"
