"""Blob storage for publication files plus the local staging area uploads pass through."""
from typing import Optional
import logging
import os
import uuid

from werkzeug.utils import secure_filename

from config import SUPABASE_CONFIG, UPLOAD_CONFIG
from exceptions import UpstreamError, ValidationError

logger = logging.getLogger(__name__)


class BlobStore:
    """Narrow interface the publication service uploads through."""

    def upload(self, name: str, content: bytes, content_type: str = 'application/pdf') -> str:
        """Store ``content`` under ``name`` and return its public URL."""
        raise NotImplementedError

    def delete(self, name: str) -> None:
        raise NotImplementedError


class SupabaseBlobStore(BlobStore):
    """Publication files in a Supabase storage bucket"""

    def __init__(self, supabase, bucket_name: Optional[str] = None):
        self.supabase = supabase
        self.bucket_name = bucket_name or SUPABASE_CONFIG['publications_bucket_name']

    def upload(self, name: str, content: bytes, content_type: str = 'application/pdf') -> str:
        try:
            bucket = self.supabase.storage.from_(self.bucket_name)
            # upsert: an orphan left by an earlier failed registration has the same name and bytes
            bucket.upload(
                path=name,
                file=content,
                file_options={'content-type': content_type, 'upsert': 'true'}
            )
            public_url = bucket.get_public_url(name)
        except Exception as e:
            logger.error(f"Uploading {name} to bucket {self.bucket_name} failed: {e}")
            raise UpstreamError('File upload failed')
        logger.info(f"Uploaded {name} ({len(content)} bytes) to bucket {self.bucket_name}")
        # some client versions append a bare '?'
        return public_url.rstrip('?')

    def delete(self, name: str) -> None:
        try:
            self.supabase.storage.from_(self.bucket_name).remove([name])
            logger.info(f"Removed {name} from bucket {self.bucket_name}")
        except Exception as e:
            logger.warning(f"Removing {name} from bucket {self.bucket_name} failed: {e}")


def allowed_file(filename: str) -> bool:
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in UPLOAD_CONFIG['allowed_extensions']


def stage_upload(file_storage, staging_dir: Optional[str] = None) -> str:
    """
    Save an incoming werkzeug FileStorage to the local staging directory

    Args:
        file_storage: the uploaded file from request.files
        staging_dir: override for UPLOAD_CONFIG['staging_dir']

    Returns:
        str: path of the staged file
    """
    filename = secure_filename(file_storage.filename or '')
    if not filename or not allowed_file(filename):
        raise ValidationError('Only PDF files can be uploaded')
    staging_dir = staging_dir or UPLOAD_CONFIG['staging_dir']
    os.makedirs(staging_dir, exist_ok=True)
    path = os.path.join(staging_dir, f"{uuid.uuid4().hex}_{filename}")
    file_storage.save(path)
    return path


def discard_staged(path: Optional[str]) -> None:
    """Best-effort removal of a staged file; failures are logged, never raised."""
    if not path:
        return
    try:
        if os.path.exists(path):
            os.remove(path)
    except OSError as e:
        logger.warning(f"Could not delete staged file {path}: {e}")
