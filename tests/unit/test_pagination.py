"""Tests for page metadata and camelCase serialization."""

import pytest

from src.taskhub.schemas import PageResponse

pytestmark = pytest.mark.unit


class TestPageResponse:
    def test_first_of_several_pages(self):
        page = PageResponse[int].build(list(range(20)), total=45, page=0, size=20)

        assert page.total_pages == 3
        assert page.has_next is True
        assert page.has_previous is False

    def test_last_page(self):
        page = PageResponse[int].build([1, 2, 3, 4, 5], total=45, page=2, size=20)

        assert page.has_next is False
        assert page.has_previous is True

    def test_empty_result(self):
        page = PageResponse[int].build([], total=0, page=0, size=20)

        assert page.total_pages == 0
        assert page.has_next is False
        assert page.has_previous is False

    def test_page_past_the_end(self):
        page = PageResponse[int].build([], total=5, page=3, size=20)
        assert page.has_next is False
        assert page.has_previous is True

    def test_wire_format_uses_camel_case(self):
        wire = PageResponse[int].build([1], total=1, page=0, size=20).to_wire()

        assert wire == {
            "messages": [1],
            "totalElements": 1,
            "totalPages": 1,
            "currentPage": 0,
            "pageSize": 20,
            "hasNext": False,
            "hasPrevious": False,
        }
