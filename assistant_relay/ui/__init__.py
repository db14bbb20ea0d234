"""NiceGUI interface - thin visualization layer for chat interactions.

Responsibilities:
    - Thread sidebar (create, select, delete)
    - Chat message display with streaming support and a stop button
    - File attachment for question answering over one document
    - Toast notifications for failures

Holds no relay logic; everything goes through ``assistant_relay.client``.
"""
