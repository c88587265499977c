"""Per-user notification inbox stored in DuckDB."""
from .service import NotificationService

__all__ = ["NotificationService"]
