"""Assistant Relay - streaming chat relay in front of an OpenAI assistant.

Combines FastAPI for HTTP streaming, the OpenAI SDK for upstream runs,
NiceGUI for the chat interface, and Pydantic for data validation.

Components:
    - api: HTTP endpoints and the server-sent event relay
    - upstream: OpenAI adapter, configuration and intent detection
    - streaming: wire framing and cooperative cancellation
    - client: conversation state and the stream consumer
    - storage: threads in SQLite, documents in the vector store
    - parsing: text extraction for attached files
    - ui: Web interface for chat interactions
    - models: Request/response schemas
"""

__version__ = "0.1.0"
