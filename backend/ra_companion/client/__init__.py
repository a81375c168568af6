from ra_companion.client.consumer import ResponseAccumulator
from ra_companion.client.errors import ErrorKind, StreamError, user_message_for
from ra_companion.client.stream import ChatStreamClient

__all__ = ["ChatStreamClient", "ErrorKind", "ResponseAccumulator", "StreamError", "user_message_for"]
