"""
Unit tests for the ranking orchestrator (stages/orchestrator.py)

Tests cover:
- Full rerank state machine and progress events
- Malformed / failed oracle answers leave stored ranks untouched
- Sentinel fallback without an oracle
- Incremental ranking of new courses
- Filling in missing ranks through the chunked executor
"""

from types import SimpleNamespace

import httpx
import openai
import pytest

from relevancy.categories import Category
from relevancy.errors import OracleMalformedResponse, OracleRateLimited, OracleTransportError
from relevancy.llm import RelevancyOracle
from relevancy.progress import (
    AWAITING_ORACLE,
    COMPLETED,
    FAILED,
    IDLE,
    PERSISTING,
    PROMPTING,
    SELECTING_CANDIDATES,
    VALIDATING,
)
from stages.orchestrator import RelevancyRanker

from conftest import FakeOracle, InMemoryCatalog, make_course


REQUEST = httpx.Request('POST', 'https://api.openai.com/v1/chat/completions')


def make_ranker(catalog, registry, oracle, executor=None, **kwargs):
    return RelevancyRanker(store=catalog, oracle=oracle, registry=registry, executor=executor, **kwargs)


class TestFullRerank:
    """Tests for iter_rerank_category / rerank_category"""

    def test_event_stream(self, catalog, registry):
        """Test the phase sequence and that the last event carries the result"""
        ranker = make_ranker(catalog, registry, FakeOracle(bulk=[('B', 1), ('C', 2), ('A', 3)]))

        events = list(ranker.iter_rerank_category('Business'))
        phases = [e.phase for e in events]

        assert phases[:6] == [IDLE, SELECTING_CANDIDATES, PROMPTING, AWAITING_ORACLE, VALIDATING, PERSISTING]
        assert phases[-1] == COMPLETED
        assert sum(1 for e in events if e.is_terminal) == 1
        processed = [e.processed for e in events]
        assert processed == sorted(processed)
        assert events[-1].result['ranked'] == 3

    def test_event_stream_not_restartable(self, catalog, registry):
        stream = make_ranker(catalog, registry, FakeOracle()).iter_rerank_category('Business')
        list(stream)

        with pytest.raises(StopIteration):
            next(stream)

    def test_ranks_persisted(self, catalog, registry, business):
        ranker = make_ranker(catalog, registry, FakeOracle(bulk=[('B', 1), ('C', 2), ('A', 3)]))

        result = ranker.rerank_category('Business')

        assert result['success'] is True
        assert result['ranked'] == 3
        assert catalog.ranks_for(business) == {'A': 3, 'B': 1, 'C': 2}
        assert result['top'][0] == (1, 'B', 'Prompting Basics')

    def test_missing_course_ranked_last(self, catalog, registry, business):
        ranker = make_ranker(catalog, registry, FakeOracle(bulk=[('B', 1), ('A', 2)]))

        result = ranker.rerank_category('Business')

        assert catalog.ranks_for(business) == {'B': 1, 'A': 2, 'C': 3}
        assert result['missing'] == ['C']

    def test_hallucinated_id_never_written(self, catalog, registry, business):
        ranker = make_ranker(catalog, registry, FakeOracle(bulk=[('A', 1), ('X', 2)]))

        ranker.rerank_category('Business')

        assert 'X' not in catalog.ranks_for(business)
        assert all(course_id != 'X' for course_id, _, _ in catalog.writes)

    def test_malformed_response_writes_nothing(self, catalog, registry, business):
        """Test that a malformed oracle answer fails the run and keeps old ranks"""
        catalog.set_ranks(business, {'A': 1, 'B': 2, 'C': 3})
        ranker = make_ranker(catalog, registry, FakeOracle(bulk=OracleMalformedResponse('not json')))

        events = list(ranker.iter_rerank_category('Business'))
        result = events[-1].result

        assert events[-1].phase == FAILED
        assert result['success'] is False
        assert result['ranked'] == 0
        assert catalog.writes == []
        assert catalog.ranks_for(business) == {'A': 1, 'B': 2, 'C': 3}

    def test_transport_error_writes_nothing(self, catalog, registry):
        ranker = make_ranker(catalog, registry, FakeOracle(bulk=OracleTransportError('timeout')))

        result = ranker.rerank_category('Business')

        assert result['success'] is False
        assert result['ranked'] == 0
        assert catalog.writes == []

    def test_nothing_usable_writes_nothing(self, catalog, registry):
        ranker = make_ranker(catalog, registry, FakeOracle(bulk=[('X', 1), ('Y', 2)]))

        result = ranker.rerank_category('Business')

        assert result['success'] is False
        assert catalog.writes == []

    def test_empty_catalog(self, registry):
        oracle = FakeOracle()
        ranker = make_ranker(InMemoryCatalog(), registry, oracle)

        result = ranker.rerank_category('Business')

        assert result['success'] is True
        assert result['ranked'] == 0
        assert oracle.calls == 0

    def test_partial_persistence_failure(self, catalog, registry):
        """Test that write failures are reported with the partial count"""
        catalog.fail_ids.add('A')
        ranker = make_ranker(catalog, registry, FakeOracle())

        events = list(ranker.iter_rerank_category('Business'))
        result = events[-1].result

        assert events[-1].phase == FAILED
        assert result['ranked'] == 2
        assert result['failed'] == 1

    def test_without_oracle(self, catalog, registry):
        ranker = make_ranker(catalog, registry, None)

        result = ranker.rerank_category('Business')

        assert result['success'] is False
        assert catalog.writes == []

    def test_category_object_accepted(self, catalog, registry):
        landing = Category(name='dentists', context='Dental clinics', rank_column='dentists_relevancy')
        ranker = make_ranker(catalog, registry, FakeOracle())

        result = ranker.initialize_category(landing)

        assert result['success'] is True
        assert catalog.columns_added == ['dentists_relevancy']
        assert len(catalog.ranks_for(landing)) == 3


class TestRerankAll:
    """Tests for rerank_all"""

    def test_continues_after_failing_category(self, catalog, registry, fleet):
        def bulk(request):
            if request.category == 'Business':
                raise RuntimeError('unexpected')
            return [(item['id'], rank) for rank, item in enumerate(request.items, start=1)]

        sleeps = []
        ranker = make_ranker(catalog, registry, FakeOracle(bulk=bulk))

        results = ranker.rerank_all(delay_seconds=2, sleep=sleeps.append)

        assert results['Business']['success'] is False
        assert 'unexpected' in results['Business']['error']
        assert results['Fleet']['success'] is True
        assert len(catalog.ranks_for(fleet)) == 3
        assert sleeps == [2]

    def test_names_case_insensitive(self, catalog, registry, business):
        ranker = make_ranker(catalog, registry, FakeOracle())

        results = ranker.rerank_all(['business'], delay_seconds=0)

        assert results['Business']['success'] is True
        assert len(catalog.ranks_for(business)) == 3

    def test_unknown_category_recorded_as_failed(self, catalog, registry, fleet, caplog):
        """Test that an unknown name fails its entry and the others still run"""
        ranker = make_ranker(catalog, registry, FakeOracle())

        results = ranker.rerank_all(['Dentists', 'Fleet'], delay_seconds=0)

        assert results['Dentists']['success'] is False
        assert 'Unknown category' in results['Dentists']['error']
        assert 'Unknown category' in caplog.text
        assert results['Fleet']['success'] is True
        assert len(catalog.ranks_for(fleet)) == 3


class TestIncrementalRanking:
    """Tests for rank_new_course"""

    def test_sentinel_without_oracle(self, catalog, registry, courses):
        """Test that no credential means the sentinel rank and no oracle call"""
        ranker = make_ranker(catalog, registry, None)

        assert ranker.oracle_available is False
        assert ranker.rank_new_course(courses[0], 'Business') == 999

    def test_sentinel_configurable(self, catalog, registry, courses):
        ranker = make_ranker(catalog, registry, None, sentinel=5000)

        assert ranker.rank_new_course(courses[0], 'Business') == 5000

    def test_sentinel_on_oracle_error(self, catalog, registry, courses):
        ranker = make_ranker(catalog, registry, FakeOracle(comparative=OracleMalformedResponse('???')))

        assert ranker.rank_new_course(courses[0], 'Business') == 999

    def test_sentinel_on_unexpected_client_error(self, catalog, registry, courses):
        """Test that an unmapped openai error still ends in the sentinel rank"""
        def create(**kwargs):
            raise openai.APIResponseValidationError(response=httpx.Response(200, request=REQUEST), body=None)

        client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
        oracle = RelevancyOracle(client=client, max_retries=2, backoff_min=0, backoff_max=0)
        ranker = make_ranker(catalog, registry, oracle)

        assert ranker.rank_new_course(courses[0], 'Business') == 999

    def test_reference_excludes_new_course(self, catalog, registry, business, courses):
        catalog.set_ranks(business, {'A': 2, 'B': 1, 'C': 3})
        oracle = FakeOracle(comparative=2)
        ranker = make_ranker(catalog, registry, oracle, comparison_limit=20)

        rank = ranker.rank_new_course(courses[0], 'Business')
        request = oracle.comparative_requests[0]

        assert rank == 2
        assert [item['id'] for item in request.referenceItems] == ['B', 'C']
        assert request.upperBound == 100

    def test_comparison_limit_applied(self, registry, business):
        catalog = InMemoryCatalog([make_course(str(i)) for i in range(40)])
        catalog.set_ranks(business, {str(i): i + 1 for i in range(40)})
        oracle = FakeOracle(comparative=7)
        ranker = make_ranker(catalog, registry, oracle, comparison_limit=20)

        ranker.rank_new_course(make_course('new'), 'Business')

        assert len(oracle.comparative_requests[0].referenceItems) == 20

    def test_nothing_written(self, catalog, registry, courses):
        ranker = make_ranker(catalog, registry, FakeOracle(comparative=4))

        ranker.rank_new_course(courses[0], 'Business')

        assert catalog.writes == []

    def test_all_categories_persisted(self, catalog, registry, executor, business, fleet):
        def comparative(request):
            return 3 if request.category == 'Business' else 8

        ranker = make_ranker(catalog, registry, FakeOracle(comparative=comparative), executor)

        ranks = ranker.rank_new_course_all_categories('A')

        assert ranks == {'Business': 3, 'Fleet': 8}
        assert catalog.ranks_for(business) == {'A': 3}
        assert catalog.ranks_for(fleet) == {'A': 8}

    def test_all_categories_without_oracle(self, catalog, registry, business):
        ranker = make_ranker(catalog, registry, None)

        ranks = ranker.rank_new_course_all_categories('A')

        assert ranks == {'Business': 999, 'Fleet': 999}
        assert catalog.ranks_for(business) == {'A': 999}

    def test_unknown_course(self, catalog, registry):
        ranker = make_ranker(catalog, registry, FakeOracle())

        ranks = ranker.rank_new_course_all_categories('nope', persist=False)

        assert ranks == {'Business': 999, 'Fleet': 999}
        assert catalog.writes == []


class TestFillMissing:
    """Tests for iter_fill_missing / fill_missing"""

    def test_only_unranked_courses_ranked(self, catalog, registry, executor, business):
        catalog.set_ranks(business, {'A': 1})
        oracle = FakeOracle(comparative=2)
        ranker = make_ranker(catalog, registry, oracle, executor)

        result = ranker.fill_missing('Business')

        assert result['success'] is True
        assert result['ranked'] == 2
        assert catalog.ranks_for(business) == {'A': 1, 'B': 2, 'C': 2}
        assert {r.newItem['id'] for r in oracle.comparative_requests} == {'B', 'C'}

    def test_failed_courses_stay_unranked(self, catalog, registry, executor, business):
        def comparative(request):
            if request.newItem['id'] == 'B':
                raise OracleTransportError('connection reset')
            return 5

        ranker = make_ranker(catalog, registry, FakeOracle(comparative=comparative), executor)

        events = list(ranker.iter_fill_missing('Business'))
        result = events[-1].result

        assert events[-1].phase == FAILED
        assert result['ranked'] == 2
        assert result['failed'] == 1
        assert 'B' not in catalog.ranks_for(business)

    def test_rate_limited_course_retried(self, catalog, registry, executor, business):
        attempts = []

        def comparative(request):
            attempts.append(request.newItem['id'])
            if request.newItem['id'] == 'C' and attempts.count('C') == 1:
                raise OracleRateLimited('429')
            return 9

        ranker = make_ranker(catalog, registry, FakeOracle(comparative=comparative), executor)

        result = ranker.fill_missing('Business')

        assert result['success'] is True
        assert attempts.count('C') == 2
        assert catalog.ranks_for(business)['C'] == 9

    def test_chunk_progress_events(self, catalog, registry, executor):
        ranker = make_ranker(catalog, registry, FakeOracle(), executor)

        events = list(ranker.iter_fill_missing('Business'))
        awaiting = [e.processed for e in events if e.phase == AWAITING_ORACLE]

        assert awaiting == [2, 3]
        assert events[-1].phase == COMPLETED

    def test_nothing_missing(self, catalog, registry, business):
        catalog.set_ranks(business, {'A': 1, 'B': 2, 'C': 3})
        oracle = FakeOracle()
        ranker = make_ranker(catalog, registry, oracle)

        result = ranker.fill_missing('Business')

        assert result['success'] is True
        assert oracle.calls == 0


class TestClearCategory:
    """Tests for clear_category"""

    def test_clears_ranks(self, catalog, registry, business):
        catalog.set_ranks(business, {'A': 1, 'B': 2})
        ranker = make_ranker(catalog, registry, None)

        assert ranker.clear_category('Business') == 2
        assert catalog.ranks_for(business) == {}
