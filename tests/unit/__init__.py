"""Unit tests for individual components in isolation.

Coverage:
    - streaming/: Frame encoding and incremental decoding
    - upstream/: Configuration, intent detection and the adapter modes
    - client/: Conversation state
    - parsing/ and storage/: Text extraction and the thread store

The OpenAI client is replaced with fakes. Leverages pytest-check for
multiple assertions per test.
"""
