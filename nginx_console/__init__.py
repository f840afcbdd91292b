"""nginx-console: privileged control and log discovery for a local nginx."""

__version__ = "0.1.0"
