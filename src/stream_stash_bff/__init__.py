"""stream-stash backend-for-frontend: Google login held in an encrypted cookie."""

__version__ = "0.1.0"
