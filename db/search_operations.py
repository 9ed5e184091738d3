"""
Filtered, sorted and paginated search over publications and authors.

Equality and range filters are pushed down to PostgREST as ``QuerySpec``
predicates. Two things are not expressible as one filtered select and are
resolved here instead:

* author filters: matching assignment rows are looked up first and the
  publication query is narrowed to their publication ids;
* text relevance: candidates matching any term in any weighted field are
  fetched, scored, ordered by score (ties by the requested sort field) and
  paged in memory.

Every paginated result has the shape produced by ``PageSpec.paginate``.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
import re
import logging

from config import SEARCH_CONFIG
from db.author_operations import AUTHOR_PUBLIC_COLUMNS, AUTHORS
from db.base_operations import BaseOperations
from db.publication_operations import PUBLICATIONS
from db.query_builder import (
    PageSpec,
    Predicate,
    QuerySpec,
    SortSpec,
    contains_text,
    eq,
    half_open,
    month_bounds,
    neq,
    not_null,
    one_of,
    overlaps,
    year_bounds,
    year_range_bounds,
)
from exceptions import NotFoundError, ValidationError
from publication_utils.validators import normalize_keywords, parse_int, validate_choice
from schemas import JOURNAL_TYPES

logger = logging.getLogger(__name__)

AUTHOR_SEARCH_FIELDS = {
    'name': 'author_name',
    'email': 'email',
    'employee_id': 'employee_id',
}

RELATED_COLUMNS = 'id, title, publication_date, keywords, department, journal'


def tokenize(text: str) -> List[str]:
    """Lowercase word terms of a free-text query, de-duplicated in order."""
    terms = []
    for term in re.findall(r"[\w][\w\-']*", (text or '').lower()):
        if term not in terms:
            terms.append(term)
    return terms


def relevance_score(row: Dict[str, Any], terms: Sequence[str], weights: Dict[str, int]) -> int:
    """Weighted hit count: substring hits in title/abstract/journal, exact keyword hits."""
    title = (row.get('title') or '').lower()
    abstract = (row.get('abstract') or '').lower()
    journal = (row.get('journal') or '').lower()
    keywords = [k.lower() for k in row.get('keywords') or []]
    score = 0
    for term in terms:
        if term in title:
            score += weights.get('title', 0)
        if term in keywords:
            score += weights.get('keywords', 0)
        if term in abstract:
            score += weights.get('abstract', 0)
        if term in journal:
            score += weights.get('journal', 0)
    return score


@dataclass
class PublicationFilters:
    """Independently composable publication filters; unset fields do not filter."""
    text: Optional[str] = None
    author: Optional[str] = None
    year: Optional[int] = None
    start_year: Optional[int] = None
    end_year: Optional[int] = None
    month: Optional[int] = None
    department: Optional[str] = None
    journal_type: Optional[str] = None
    keywords: Optional[List[str]] = None

    @classmethod
    def from_args(cls, args) -> 'PublicationFilters':
        """Build from request query parameters (any mapping with .get)."""
        def text(name):
            value = args.get(name)
            return value.strip() if isinstance(value, str) and value.strip() else None

        def number(name):
            value = text(name)
            return parse_int(value, name) if value is not None else None

        filters = cls(
            text=text('query'),
            author=text('author'),
            year=number('year'),
            start_year=number('start_year'),
            end_year=number('end_year'),
            month=number('month'),
            department=text('department'),
            journal_type=text('journal_type'),
            keywords=normalize_keywords(text('keywords')) or None,
        )
        filters.validate()
        return filters

    def validate(self) -> None:
        if self.month is not None:
            if self.year is None:
                raise ValidationError('month filter requires year')
            if not 1 <= self.month <= 12:
                raise ValidationError('month must be between 1 and 12')
        if self.start_year is not None and self.end_year is not None and self.start_year > self.end_year:
            raise ValidationError('start_year must not be after end_year')
        if self.journal_type is not None:
            self.journal_type = validate_choice(self.journal_type.lower(), 'journal_type', JOURNAL_TYPES)

    def predicates(self) -> List[Predicate]:
        """Database-side predicates; text and author filters are resolved separately."""
        predicates = []
        if self.year is not None:
            if self.month is not None:
                predicates += half_open('publication_date', *month_bounds(self.year, self.month))
            else:
                predicates += half_open('publication_date', *year_bounds(self.year))
        if self.start_year is not None:
            predicates.append(Predicate('publication_date', 'gte', year_bounds(self.start_year)[0]))
        if self.end_year is not None:
            predicates.append(Predicate('publication_date', 'lt', year_bounds(self.end_year)[1]))
        if self.department:
            predicates.append(eq('department', self.department))
        if self.journal_type:
            predicates.append(eq('journal_type', self.journal_type))
        if self.keywords:
            predicates.append(overlaps('keywords', self.keywords))
        return predicates


class SearchOperations(BaseOperations):
    """Search & pagination over publications and authors"""

    def __init__(self, supabase, weights: Optional[Dict[str, int]] = None):
        super().__init__(supabase)
        self.weights = weights or SEARCH_CONFIG['text_weights']

    # ---------- publications ----------

    def search_publications(self, filters: PublicationFilters, page: PageSpec, sort: SortSpec) -> Dict[str, Any]:
        """
        Advanced search: every set filter narrows the result

        Args:
            filters: text / author / date / department / journal type / keyword filters
            page: page and limit
            sort: requested order; with a text query it only breaks relevance ties

        Returns:
            dict: paginated publications
        """
        spec = QuerySpec(PUBLICATIONS).where(*filters.predicates())

        if filters.author:
            publication_ids = self._publication_ids_by_author(filters.author)
            if not publication_ids:
                return page.paginate([], 0)
            spec = spec.where(one_of('id', publication_ids))

        if filters.text:
            return self._ranked(spec, filters.text, page, sort)

        rows, total = self._page(spec.sorted_by(sort).paged(page))
        return page.paginate(rows, total)

    def search_publications_by_text(self, query: str, page: PageSpec, sort: SortSpec) -> Dict[str, Any]:
        if not query or not query.strip():
            raise ValidationError('Search query is required')
        return self.search_publications(PublicationFilters(text=query.strip()), page, sort)

    def search_publications_by_author(self, fragment: str, page: PageSpec, sort: SortSpec) -> Dict[str, Any]:
        if not fragment or not fragment.strip():
            raise ValidationError('Author name or email is required for search')
        return self.search_publications(PublicationFilters(author=fragment.strip()), page, sort)

    def get_publications_by_year(self, year: Any, page: PageSpec, sort: SortSpec) -> Dict[str, Any]:
        """Publications dated in [year-01-01, year+1-01-01)."""
        return self.search_publications(PublicationFilters(year=parse_int(year, 'year')), page, sort)

    def get_publications_by_year_range(self, start_year: Any, end_year: Any, page: PageSpec,
                                       sort: SortSpec) -> Dict[str, Any]:
        filters = PublicationFilters(start_year=parse_int(start_year, 'start_year'),
                                     end_year=parse_int(end_year, 'end_year'))
        filters.validate()
        return self.search_publications(filters, page, sort)

    def get_publications_by_journal_type(self, journal_type: str, page: PageSpec, sort: SortSpec) -> Dict[str, Any]:
        filters = PublicationFilters(journal_type=journal_type)
        filters.validate()
        return self.search_publications(filters, page, sort)

    def get_publications_by_department(self, department_id: str, page: PageSpec, sort: SortSpec) -> Dict[str, Any]:
        return self.search_publications(PublicationFilters(department=department_id), page, sort)

    def get_related_publications(self, publication_id: str, limit: Any = None) -> List[Dict[str, Any]]:
        """Other publications sharing a keyword, most recent first."""
        publication = self._get(PUBLICATIONS, publication_id, columns='id, keywords')
        if not publication:
            raise NotFoundError('Publication not found')
        keywords = publication.get('keywords') or []
        if not keywords:
            return []
        page = PageSpec.from_args(1, limit if limit is not None else SEARCH_CONFIG['related_limit'])
        spec = (QuerySpec(PUBLICATIONS, columns=RELATED_COLUMNS)
                .where(neq('id', publication_id), overlaps('keywords', keywords))
                .sorted_by(SortSpec('publication_date'))
                .paged(page))
        return self._fetch(spec)

    def get_publications_by_year_grouped(self, start_year: Any, end_year: Any) -> List[Dict[str, Any]]:
        """Per-year counts, newest year first, each with its most recent titles."""
        start = parse_int(start_year, 'start_year')
        end = parse_int(end_year, 'end_year')
        if start > end:
            raise ValidationError('start_year must not be after end_year')

        spec = (QuerySpec(PUBLICATIONS, columns='id, title, publication_date')
                .where(*half_open('publication_date', *year_range_bounds(start, end)))
                .sorted_by(SortSpec('publication_date')))
        groups: Dict[int, Dict[str, Any]] = {}
        for row in self._fetch(spec):
            year = int(str(row['publication_date'])[:4])
            group = groups.setdefault(year, {'year': year, 'count': 0, 'publications': []})
            group['count'] += 1
            if len(group['publications']) < SEARCH_CONFIG['year_summary_titles']:
                group['publications'].append(row)
        return [groups[year] for year in sorted(groups, reverse=True)]

    def _publication_ids_by_author(self, fragment: str) -> List[str]:
        ids = set()
        for column in ('author_name', 'email'):
            spec = (QuerySpec(AUTHORS, columns='publication_id')
                    .where(not_null('publication_id'), eq('is_active', True), contains_text(column, fragment)))
            ids.update(row['publication_id'] for row in self._fetch(spec))
        return sorted(ids)

    def _ranked(self, spec: QuerySpec, text: str, page: PageSpec, sort: SortSpec) -> Dict[str, Any]:
        terms = tokenize(text)
        if not terms:
            return page.paginate([], 0)

        candidates: Dict[str, Dict[str, Any]] = {}
        for column in ('title', 'abstract', 'journal'):
            if not self.weights.get(column):
                continue
            for term in terms:
                for row in self._fetch(spec.where(contains_text(column, term))):
                    candidates[row['id']] = row
        if self.weights.get('keywords'):
            for row in self._fetch(spec.where(overlaps('keywords', terms))):
                candidates[row['id']] = row

        rows = sorted(candidates.values(), key=lambda r: r['id'])
        rows = sort.sort_rows(rows)
        scored = [dict(row, score=relevance_score(row, terms, self.weights)) for row in rows]
        # stable: equal scores keep the requested sort order
        scored.sort(key=lambda r: r['score'], reverse=True)
        logger.debug(f"Text search {terms!r}: {len(scored)} candidates")
        return page.paginate(page.slice(scored), len(scored))

    # ---------- authors ----------

    def list_authors(self, page: PageSpec, sort: SortSpec) -> Dict[str, Any]:
        spec = QuerySpec(AUTHORS, columns=AUTHOR_PUBLIC_COLUMNS).sorted_by(sort).paged(page)
        rows, total = self._page(spec)
        return page.paginate(rows, total)

    def search_authors(self, fragment: str, field: str, page: PageSpec, sort: SortSpec) -> Dict[str, Any]:
        """
        Case-insensitive substring search over templates and assignments

        Args:
            fragment: text to look for
            field: one of name, email, employee_id
            page: page and limit
            sort: requested order

        Returns:
            dict: paginated author records, never containing a password
        """
        column = AUTHOR_SEARCH_FIELDS.get(field)
        if column is None:
            raise ValidationError(f'field must be one of: {", ".join(AUTHOR_SEARCH_FIELDS)}')
        if not fragment or not str(fragment).strip():
            raise ValidationError(f'{field} is required for search')
        spec = (QuerySpec(AUTHORS, columns=AUTHOR_PUBLIC_COLUMNS)
                .where(contains_text(column, str(fragment).strip()))
                .sorted_by(sort)
                .paged(page))
        rows, total = self._page(spec)
        return page.paginate(rows, total)

