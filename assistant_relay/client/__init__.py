"""Client side of the relay: conversation state and the stream consumer.

Used by the NiceGUI page, and usable on its own from any asyncio program.
"""

from assistant_relay.client.api import ApiClient
from assistant_relay.client.consumer import StreamConsumer, StreamOutcome, StreamResult
from assistant_relay.client.conversation import ConversationStateError, ConversationStore

__all__ = [
    "ApiClient",
    "ConversationStateError",
    "ConversationStore",
    "StreamConsumer",
    "StreamOutcome",
    "StreamResult",
]
