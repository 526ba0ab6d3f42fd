"""Google Drive models and the client port used by the download pipeline."""

from .client import DriveClient, DriveError
from .models import EXPORT_FORMATS, FOLDER_FILES, FOLDER_MANIFEST, DriveFile, MimeTypes, mime_to_ext

__all__ = [
    "EXPORT_FORMATS",
    "FOLDER_FILES",
    "FOLDER_MANIFEST",
    "DriveClient",
    "DriveError",
    "DriveFile",
    "MimeTypes",
    "mime_to_ext",
]
