from flask import Blueprint, request
import logging

from apis.request_utils import get_supabase, page_args, success
from db.publication_operations import PUBLICATION_DEFAULT_SORT, PUBLICATION_SORT_FIELDS, PublicationOperations
from db.search_operations import PublicationFilters, SearchOperations

logger = logging.getLogger(__name__)

publication_bp = Blueprint('publications', __name__, url_prefix='/api/publications')


def _publication_page_args():
    return page_args(PUBLICATION_SORT_FIELDS, PUBLICATION_DEFAULT_SORT)


@publication_bp.route('', methods=['GET'])
@publication_bp.route('/search', methods=['GET'])
def search_publications():
    """
    Advanced search; query, author, year, month, start_year, end_year, department,
    journal_type and keywords all narrow the result together
    """
    filters = PublicationFilters.from_args(request.args)
    page, sort = _publication_page_args()
    logger.debug(f"Publication search {filters} page={page.page} limit={page.limit} sort={sort.field}")
    return success(SearchOperations(get_supabase()).search_publications(filters, page, sort))


@publication_bp.route('/text-search', methods=['GET'])
def text_search():
    page, sort = _publication_page_args()
    result = SearchOperations(get_supabase()).search_publications_by_text(request.args.get('query'), page, sort)
    return success(result)


@publication_bp.route('/author-search', methods=['GET'])
def author_search():
    fragment = request.args.get('author') or request.args.get('query')
    page, sort = _publication_page_args()
    return success(SearchOperations(get_supabase()).search_publications_by_author(fragment, page, sort))


@publication_bp.route('/year/<year>', methods=['GET'])
def publications_by_year(year):
    page, sort = _publication_page_args()
    return success(SearchOperations(get_supabase()).get_publications_by_year(year, page, sort))


@publication_bp.route('/year-summary', methods=['GET'])
def year_summary():
    groups = SearchOperations(get_supabase()).get_publications_by_year_grouped(
        request.args.get('start'), request.args.get('end'))
    return success(groups)


@publication_bp.route('/<publication_id>', methods=['GET'])
def get_publication(publication_id):
    return success(PublicationOperations(get_supabase()).get_publication(publication_id))


@publication_bp.route('/<publication_id>/related', methods=['GET'])
def related_publications(publication_id):
    related = SearchOperations(get_supabase()).get_related_publications(publication_id, request.args.get('limit'))
    return success(related)
