"""
ApiCommons — Pagination Schema Unit Tests
==========================================
"""

import pytest

from apicommons.schemas.pagination import PagedRequest, PagedResult


class TestPagedRequest:
    """Normalization of client-supplied paging values."""

    def test_defaults(self):
        request = PagedRequest()
        assert (request.current_page, request.page_size, request.max_page_size) == (1, 20, 200)
        assert request.skip == 0

    @pytest.mark.parametrize(
        "page, size, max_size, expected",
        [
            (0, 20, 200, (1, 20, 200)),
            (-3, 20, 200, (1, 20, 200)),
            (2, 0, 200, (2, 1, 200)),
            (2, 500, 200, (2, 200, 200)),
            (1, 10, 0, (1, 1, 1)),
        ],
    )
    def test_normalization(self, page, size, max_size, expected):
        request = PagedRequest(current_page=page, page_size=size, max_page_size=max_size)
        assert (request.current_page, request.page_size, request.max_page_size) == expected

    def test_skip(self):
        assert PagedRequest(current_page=3, page_size=25).skip == 50


class TestPagedResult:
    """Totals computed for a page of items."""

    def test_total_pages_rounds_up(self):
        result = PagedResult.from_items([1, 2, 3], 7, PagedRequest(current_page=1, page_size=3))
        assert result.total_pages == 3

    def test_total_pages_zero_for_non_positive_size(self):
        assert PagedResult(items=[], total_count=10, current_page=1, page_size=0).total_pages == 0

    def test_from_items_binds_request(self):
        request = PagedRequest(current_page=2, page_size=5)
        result = PagedResult.from_items(("a", "b"), 7, request)
        assert result.items == ["a", "b"]
        assert result.current_page == 2
        assert result.page_size == 5

    def test_empty(self):
        result = PagedResult.empty(PagedRequest(current_page=4, page_size=10))
        assert result.items == []
        assert result.total_count == 0
        assert result.current_page == 4
