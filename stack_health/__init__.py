"""Health checks and demo landing page for the PHP API Stack image."""

__version__ = "1.2.1"
