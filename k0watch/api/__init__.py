"""Status API for k0watch."""

from k0watch.api.app import create_app

__all__ = ["create_app"]
