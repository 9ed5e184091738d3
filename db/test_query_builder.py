import pytest

from db.query_builder import (
    PageSpec,
    Predicate,
    QuerySpec,
    SortSpec,
    contains_text,
    eq,
    escape_like,
    half_open,
    month_bounds,
    year_bounds,
)


class TestPageSpec:

    def test_defaults_when_missing_or_unparseable(self):
        assert PageSpec.from_args(None, None) == PageSpec(1, 10)
        assert PageSpec.from_args('abc', 'xyz') == PageSpec(1, 10)

    def test_clamps_page_and_limit(self):
        assert PageSpec.from_args('0', '0') == PageSpec(1, 1)
        assert PageSpec.from_args(-3, 500) == PageSpec(1, 100)
        assert PageSpec.from_args('4', '25') == PageSpec(4, 25)

    def test_skip_and_inclusive_end(self):
        page = PageSpec(3, 10)
        assert page.skip == 20
        assert page.end == 29

    def test_paginate_shape(self):
        result = PageSpec(2, 10).paginate(['x'] * 10, 25)
        assert result['total_pages'] == 3
        assert result['has_next_page'] is True
        assert result['has_prev_page'] is True
        assert result['page'] == 2 and result['limit'] == 10

    def test_empty_result_has_no_pages(self):
        result = PageSpec(1, 10).paginate([], 0)
        assert result['total_pages'] == 0
        assert result['has_next_page'] is False
        assert result['has_prev_page'] is False


class TestSortSpec:

    def test_unlisted_field_falls_back_silently(self):
        sort = SortSpec.from_args('password', 'asc', ('title', 'created_at'), 'created_at')
        assert sort == SortSpec('created_at', descending=False)

    def test_order_defaults_to_desc(self):
        assert SortSpec.from_args('title', None, ('title',), 'title').descending is True
        assert SortSpec.from_args('title', 'sideways', ('title',), 'title').descending is True

    def test_sort_rows_puts_nulls_last(self):
        rows = [{'t': 'b'}, {'t': None}, {'t': 'A'}, {'t': 'c'}]
        assert [r['t'] for r in SortSpec('t', descending=False).sort_rows(rows)] == ['A', 'b', 'c', None]
        assert [r['t'] for r in SortSpec('t').sort_rows(rows)] == ['c', 'b', 'A', None]


def test_date_bounds_are_half_open():
    assert year_bounds(2023) == ('2023-01-01', '2024-01-01')
    assert month_bounds(2023, 12) == ('2023-12-01', '2024-01-01')
    assert month_bounds(2023, 2) == ('2023-02-01', '2023-03-01')
    assert half_open('publication_date', *year_bounds(2023)) == [
        Predicate('publication_date', 'gte', '2023-01-01'),
        Predicate('publication_date', 'lt', '2024-01-01'),
    ]


def test_unknown_operator_rejected():
    with pytest.raises(ValueError):
        Predicate('title', 'regex', 'x')


def test_query_spec_is_inspectable_and_immutable():
    base = QuerySpec('publications')
    narrowed = base.where(eq('department', 'd1')).sorted_by(SortSpec('title')).paged(PageSpec(2, 5))
    assert base.predicates == ()
    assert narrowed.predicates == (eq('department', 'd1'),)
    assert narrowed.page.skip == 5


@pytest.mark.parametrize('total, limit', [(0, 10), (1, 1), (23, 5), (30, 10), (7, 100)])
def test_pages_cover_every_row_exactly_once(supabase, total, limit):
    for i in range(total):
        supabase.insert_row('departments', {'name': f'dept {i:02d}', 'code': f'C{i}', 'university': 'U'})

    first = PageSpec(1, limit)
    rows, count = QuerySpec('departments').sorted_by(SortSpec('name')).paged(first).execute(supabase)
    total_pages = first.paginate(rows, count)['total_pages']

    seen = []
    for number in range(1, total_pages + 1):
        page = PageSpec(number, limit)
        rows, count = QuerySpec('departments').sorted_by(SortSpec('name')).paged(page).execute(supabase)
        result = page.paginate(rows, count)
        assert result['has_prev_page'] == (number > 1)
        assert result['has_next_page'] == (number < total_pages)
        seen.extend(r['id'] for r in rows)

    assert count == total
    assert len(seen) == total
    assert len(set(seen)) == total


def add_departments(supabase, names):
    for i, name in enumerate(names):
        supabase.insert_row('departments', {'name': name, 'code': f'C{i}', 'university': 'U'})


class TestLikeEscaping:

    def test_special_characters_escaped(self):
        assert escape_like('EMP_1') == 'EMP\\_1'
        assert escape_like('100%') == '100\\%'
        assert escape_like('a\\b') == 'a\\\\b'
        assert escape_like('a*b') == 'a_b'

    def test_fragment_matches_literally(self, supabase):
        add_departments(supabase, ['EMP_1 lab', 'EMPX1 lab', 'Other'])
        rows = QuerySpec('departments').where(contains_text('name', 'emp_1')).fetch_all(supabase)
        assert [r['name'] for r in rows] == ['EMP_1 lab']
        assert QuerySpec('departments').where(contains_text('name', '%')).fetch_all(supabase) == []


class TestPastLastPage:

    def test_offset_past_end_is_an_empty_page(self, supabase):
        add_departments(supabase, [f'dept {i}' for i in range(5)])
        page = PageSpec(3, 10)

        rows, count = QuerySpec('departments').sorted_by(SortSpec('name')).paged(page).execute(supabase)

        assert rows == [] and count == 5
        # the range request is refused, the count is asked for separately
        assert supabase.calls.count(('departments', 'select')) == 2
        result = page.paginate(rows, count)
        assert result['total_pages'] == 1
        assert result['has_prev_page'] is True
        assert result['has_next_page'] is False

    def test_offset_equal_to_total_is_served(self, supabase):
        add_departments(supabase, [f'dept {i}' for i in range(4)])
        rows, count = QuerySpec('departments').sorted_by(SortSpec('name')).paged(PageSpec(3, 2)).execute(supabase)
        assert rows == [] and count == 4


class TestFetchAll:

    def test_reads_past_the_row_cap(self, supabase):
        add_departments(supabase, [f'dept {i}' for i in range(7)])
        supabase.max_rows = 3

        rows = QuerySpec('departments').fetch_all(supabase)

        assert len(rows) == 7
        assert len({r['id'] for r in rows}) == 7

    def test_windows_keep_the_requested_order(self, supabase):
        add_departments(supabase, ['d', 'a', 'c', 'b', 'e'])
        rows = QuerySpec('departments').sorted_by(SortSpec('name', descending=False)).fetch_all(supabase, batch_size=2)
        assert [r['name'] for r in rows] == ['a', 'b', 'c', 'd', 'e']

    def test_paged_spec_returns_its_page_only(self, supabase):
        add_departments(supabase, [f'dept {i}' for i in range(5)])
        spec = QuerySpec('departments').sorted_by(SortSpec('name', descending=False)).paged(PageSpec(1, 2))
        assert [r['name'] for r in spec.fetch_all(supabase)] == ['dept 0', 'dept 1']
