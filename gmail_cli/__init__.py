"""gmail-cli: multi-profile Google account authentication for the command line."""

__version__ = "0.1.0"
