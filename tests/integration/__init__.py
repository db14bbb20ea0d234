"""Integration tests for components working together as a system.

Coverage:
    - Chat relay endpoint with real SSE responses
    - Thread, document, read-file and image endpoints
    - Stream consumer against mocked and real relay responses

No network access or API keys are required.
"""
