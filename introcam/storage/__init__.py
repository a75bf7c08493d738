"""External storage collaborators and local files."""

from .file_manager import FileManager
from .object_store import ObjectStorage, SignedUpload, SupabaseStorage
from .records import AirtableRecordStore, RecordStore

__all__ = [
    "AirtableRecordStore",
    "FileManager",
    "ObjectStorage",
    "RecordStore",
    "SignedUpload",
    "SupabaseStorage",
]
