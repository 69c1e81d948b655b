"""
Shared fixtures: in-memory catalog store and scripted ranking oracle.

Nothing here touches the network or a database.
"""
import sys
from collections import defaultdict
from pathlib import Path

import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from relevancy.categories import Category, CategoryRegistry
from relevancy.rate_control import ChunkedExecutor
from relevancy.schemas import Course, CourseRanking, RankedCourse


class InMemoryCatalog:
    """Catalog store keeping courses and rank columns in dictionaries."""

    def __init__(self, courses=(), landing_pages=()):
        self.courses = {c.id: c for c in courses}
        self.ranks = defaultdict(dict)
        self.landing_pages = list(landing_pages)
        self.fail_ids = set()
        self.writes = []
        self.columns_added = []
        self.token_usage = []

    def set_ranks(self, category, ranks):
        self.ranks[category.rank_column].update(ranks)

    def ranks_for(self, category):
        return {cid: rank for cid, rank in self.ranks[category.rank_column].items() if rank is not None}

    def select_all(self):
        return list(self.courses.values())

    def get_course(self, course_id):
        return self.courses.get(course_id)

    def select_ranked(self, category, exclude_id=None, limit=None):
        column = self.ranks[category.rank_column]
        rows = sorted(
            (rank, cid) for cid, rank in column.items()
            if rank is not None and cid != exclude_id and cid in self.courses
        )
        ranked = [RankedCourse(course=self.courses[cid], rank=rank) for rank, cid in rows]
        return ranked[:limit] if limit else ranked

    def select_unranked(self, category):
        column = self.ranks[category.rank_column]
        return [c for c in self.courses.values() if column.get(c.id) is None]

    def get_landing_pages(self):
        return list(self.landing_pages)

    def update_rank(self, course_id, category, rank):
        if course_id in self.fail_ids:
            raise RuntimeError(f"write failed for {course_id}")
        if course_id not in self.courses:
            return False
        self.ranks[category.rank_column][course_id] = rank
        self.writes.append((course_id, category.rank_column, rank))
        return True

    def clear_rank_column(self, category):
        cleared = len(self.ranks_for(category))
        self.ranks[category.rank_column].clear()
        return cleared

    def add_rank_column(self, category):
        self.columns_added.append(category.rank_column)

    def log_token_usage(self, **kwargs):
        self.token_usage.append(kwargs)


class FakeOracle:
    """
    Scripted oracle.

    bulk / comparative may be:
        - None: bulk ranks items in request order, comparative answers 1
        - an exception instance: raised on every call
        - a callable: called with the request
        - a plain value: (id, rank) pairs for bulk, an int for comparative
    """

    def __init__(self, bulk=None, comparative=None):
        self.bulk = bulk
        self.comparative = comparative
        self.bulk_requests = []
        self.comparative_requests = []

    def rank_bulk(self, request):
        self.bulk_requests.append(request)
        if isinstance(self.bulk, BaseException):
            raise self.bulk
        if callable(self.bulk):
            pairs = self.bulk(request)
        elif self.bulk is None:
            pairs = [(item['id'], rank) for rank, item in enumerate(request.items, start=1)]
        else:
            pairs = self.bulk
        return [CourseRanking(courseId=cid, rank=rank) for cid, rank in pairs]

    def rank_comparative(self, request):
        self.comparative_requests.append(request)
        if isinstance(self.comparative, BaseException):
            raise self.comparative
        if callable(self.comparative):
            return self.comparative(request)
        if self.comparative is None:
            return 1
        return self.comparative

    @property
    def calls(self):
        return len(self.bulk_requests) + len(self.comparative_requests)


def make_course(course_id, title=None, description=None, **extra):
    return Course(id=course_id, title=title or f"Course {course_id}", description=description, **extra)


@pytest.fixture
def business():
    return Category(name='Business', context='General business applications', rank_column='business_relevancy')


@pytest.fixture
def fleet():
    return Category(name='Fleet', context='Transportation and logistics', rank_column='fleet_relevancy')


@pytest.fixture
def registry(business, fleet):
    return CategoryRegistry([business, fleet])


@pytest.fixture
def courses():
    return [
        make_course('A', 'AI for Managers', 'Strategy and operations'),
        make_course('B', 'Prompting Basics', 'Write better prompts'),
        make_course('C', 'Route Optimization with ML', 'Fleet routing'),
    ]


@pytest.fixture
def catalog(courses):
    return InMemoryCatalog(courses)


@pytest.fixture
def executor():
    return ChunkedExecutor(chunk_size=2, max_chunk_retries=2, backoff_min=0, backoff_max=0, sleep=lambda s: None)
