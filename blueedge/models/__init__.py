from .chats import Chat, Message
from .chunks import Chunk
from .documents import DEFAULT_FOLDER, Document

__all__ = [
    "Chat",
    "Chunk",
    "DEFAULT_FOLDER",
    "Document",
    "Message",
]
