from typing import Any, Dict, Optional
import logging

from db.author_operations import AUTHORS, AuthorOperations
from db.base_operations import BaseOperations
from db.department_operations import DepartmentOperations
from db.query_builder import eq
from db.storage import BlobStore
from exceptions import ConflictError, NotFoundError
from publication_utils.pdf_inspector import calculate_file_hash, inspect_pdf
from publication_utils.validators import (
    clean_text,
    normalize_isbn,
    normalize_issn,
    normalize_keywords,
    parse_publication_date,
    require_fields,
    validate_choice,
    validate_file_url,
)
from schemas import JOURNAL_TYPES, Publication

logger = logging.getLogger(__name__)

PUBLICATIONS = 'publications'

PUBLICATION_SORT_FIELDS = ('publication_date', 'created_at', 'updated_at', 'title', 'co_author_count')
PUBLICATION_DEFAULT_SORT = 'publication_date'
PUBLICATION_REQUIRED_FIELDS = ('title', 'abstract', 'isbn', 'department')


class PublicationOperations(BaseOperations):
    """Publication registration (file first, record second), lookup and guarded deletion"""

    def __init__(self, supabase, blob_store: Optional[BlobStore] = None):
        super().__init__(supabase)
        self.blob_store = blob_store
        self.departments = DepartmentOperations(supabase)
        self.authors = AuthorOperations(supabase)

    def validate_fields(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validate and normalise everything except the file, before any upload happens

        Args:
            data: title, abstract, isbn, department, publication_date or month+year,
                  optional issn, journal, journal_type, keywords

        Returns:
            dict: cleaned fields ready for a Publication
        """
        require_fields(data, PUBLICATION_REQUIRED_FIELDS)
        fields = {
            'title': clean_text(data['title'], 'title', max_length=200),
            'abstract': clean_text(data['abstract'], 'abstract', max_length=1000),
            'publication_date': parse_publication_date(
                data.get('publication_date'), data.get('month'), data.get('year')),
            'isbn': normalize_isbn(data['isbn']),
            'issn': normalize_issn(data.get('issn')),
            'journal': clean_text(data.get('journal'), 'journal', max_length=200),
            'journal_type': None,
            'keywords': normalize_keywords(data.get('keywords')),
            'department': self.departments.require_department(data['department'])['id'],
        }
        if data.get('journal_type'):
            fields['journal_type'] = validate_choice(str(data['journal_type']).strip().lower(),
                                                     'journal_type', JOURNAL_TYPES)
        return fields

    def check_identifiers_free(self, fields: Dict[str, Any]) -> None:
        """Early exit for duplicate ISBN/ISSN; the unique indexes remain the real guard."""
        if self._find_one(PUBLICATIONS, eq('isbn', fields['isbn']), columns='id'):
            raise ConflictError('A publication with this ISBN already exists')
        if fields.get('issn') and self._find_one(PUBLICATIONS, eq('issn', fields['issn']), columns='id'):
            raise ConflictError('A publication with this ISSN already exists')

    def register_publication(self, data: Dict[str, Any], content: bytes) -> Dict[str, Any]:
        """
        Validate, store the file, then create the publication

        Args:
            data: publication fields (see validate_fields)
            content: PDF bytes read from the staged upload

        Returns:
            dict: the stored publication, file_url included

        Raises:
            ValidationError: bad fields or not a readable PDF
            ConflictError: ISBN/ISSN already used
            UpstreamError: the blob store failed
        """
        fields = self.validate_fields(data)
        self.check_identifiers_free(fields)
        page_count = inspect_pdf(content)
        file_hash = calculate_file_hash(content)

        file_url = self._store_file(file_hash, content)
        publication = Publication(
            file_url=validate_file_url(file_url),
            file_hash=file_hash,
            page_count=page_count,
            **fields
        )
        try:
            row = self._insert(PUBLICATIONS, publication.to_record())
        except ConflictError:
            # no compensating delete: the blob stays orphaned and is overwritten on a retry
            logger.warning(f"Publication not created after upload; blob {file_hash}.pdf left orphaned")
            raise
        logger.info(f"Publication created: {row['id']} (ISBN {publication.isbn})")
        return row

    def _store_file(self, file_hash: str, content: bytes) -> str:
        existing = self._find_one(PUBLICATIONS, eq('file_hash', file_hash), columns='file_url')
        if existing:
            logger.info(f"File {file_hash} already stored, reusing its URL")
            return existing['file_url']
        return self.blob_store.upload(f"{file_hash}.pdf", content)

    def get_publication(self, publication_id: str) -> Dict[str, Any]:
        """Publication with its ordered author list and primary author."""
        publication = self._get(PUBLICATIONS, publication_id)
        if not publication:
            raise NotFoundError('Publication not found')
        authors = self.authors.get_co_authors(publication_id)
        publication['authors'] = authors
        publication['primary_author'] = next((a for a in authors if a.get('author_order') == 1), None)
        return publication

    def delete_publication(self, publication_id: str) -> Dict[str, Any]:
        publication = self._get(PUBLICATIONS, publication_id)
        if not publication:
            raise NotFoundError('Publication not found')
        if self._count(AUTHORS, eq('publication_id', publication_id)):
            raise ConflictError('Publication still has author assignments; remove assignments first')

        self._delete(PUBLICATIONS, publication_id)
        logger.info(f"Publication deleted: {publication_id}")

        file_hash = publication.get('file_hash')
        if file_hash and self.blob_store and not self._count(PUBLICATIONS, eq('file_hash', file_hash)):
            self.blob_store.delete(f"{file_hash}.pdf")
        return publication

    def count(self) -> int:
        return self._count(PUBLICATIONS)
