"""Session authentication for websocket connections and REST requests."""

from auth.tokens import MIN_SECRET_BYTES, Identity, SessionAuthenticator

__all__ = ["MIN_SECRET_BYTES", "Identity", "SessionAuthenticator"]
