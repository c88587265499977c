"""Realtime presence and messaging over WebSockets.

Modules:
    - registry: live connections, user association and presence map
    - presence: online/offline/status fan-out
    - typing_debouncer: typing indicators with automatic expiry
    - messaging: private message routing and read receipts
    - notifications: push/broadcast entry points for HTTP handlers
    - coordinator: owns the components above and dispatches inbound events
    - router: WebSocket endpoint and presence HTTP routes
"""
from .coordinator import RealtimeCoordinator
from .router import get_coordinator

__all__ = [
    "RealtimeCoordinator",
    "get_coordinator",
]
