"""FastAPI endpoints for the assistant relay.

Endpoints:
    - GET /health: Service health status
    - POST /api/chat: Streamed chat relay (Server-Sent Events)
    - POST /api/image: Placeholder image generation
    - /api/threads: Thread and message storage
    - /api/documents: Vector-store document management
    - POST /api/read-file: Text extraction for attached files
"""

from assistant_relay.api.app import app, create_app

__all__ = ["app", "create_app"]
