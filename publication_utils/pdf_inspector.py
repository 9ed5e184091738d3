import hashlib
import logging
from io import BytesIO

import fitz

from exceptions import ValidationError

logger = logging.getLogger(__name__)


def is_pdf_content(content: bytes) -> bool:
    """
    Check the PDF magic number

    Args:
        content: raw file bytes

    Returns:
        bool: True when the bytes start with '%PDF-'
    """
    if content and len(content) > 4:
        return content.startswith(b'%PDF-')
    return False


def calculate_file_hash(content: bytes) -> str:
    """SHA-256 hex digest, used as the blob name so identical uploads share one object."""
    return hashlib.sha256(content).hexdigest()


def inspect_pdf(content: bytes) -> int:
    """
    Open the uploaded bytes with PyMuPDF and return the page count

    Args:
        content: raw file bytes

    Returns:
        int: number of pages

    Raises:
        ValidationError: not a PDF, unreadable, or empty
    """
    if not is_pdf_content(content):
        raise ValidationError('Uploaded file is not a PDF')
    try:
        doc = fitz.open(stream=BytesIO(content), filetype="pdf")
    except Exception as e:
        logger.warning(f"PDF could not be opened: {e}")
        raise ValidationError('Uploaded PDF could not be read')
    try:
        page_count = doc.page_count
    finally:
        doc.close()
    if page_count < 1:
        raise ValidationError('Uploaded PDF has no pages')
    return page_count
