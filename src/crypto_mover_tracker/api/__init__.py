"""HTTP read API."""

from crypto_mover_tracker.api.app import create_app

__all__ = ["create_app"]
