"""Message stores, relevance ranking, and context assembly."""

from crossmem.memory.assembler import MemoryAssembler, to_api_messages
from crossmem.memory.converter import FernetCipher, FieldConverter
from crossmem.memory.factory import create_message_store
from crossmem.memory.models import Degraded, Message, Ok, Role, SessionRecord
from crossmem.memory.relevance import filter_and_rank, is_informative
from crossmem.memory.store import MessageStore

__all__ = [
    "Degraded",
    "FernetCipher",
    "FieldConverter",
    "MemoryAssembler",
    "Message",
    "MessageStore",
    "Ok",
    "Role",
    "SessionRecord",
    "create_message_store",
    "filter_and_rank",
    "is_informative",
    "to_api_messages",
]
