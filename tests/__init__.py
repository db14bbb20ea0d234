"""Test package for Assistant Relay.

Structure:
    - unit/: Framing, intent, configuration, adapter and storage logic
    - integration/: HTTP endpoints and the client consumer working together

Integration tests run the real FastAPI app over ASGITransport and replace
only the upstream adapter and vector store. Leverages pytest with
pytest-check for soft assertions.
"""
