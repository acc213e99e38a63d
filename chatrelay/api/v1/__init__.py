"""API V1 routers."""

from . import conversations, websocket

__all__ = ["conversations", "websocket"]
