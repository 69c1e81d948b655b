"""
Ranking Orchestrator - Course Relevancy Ranking

Wires the stages together for the three ranking workflows:

1. Full rerank of a category:
   Stage 1 (select all courses) → Stage 2 (bulk oracle call)
   → Stage 3 (validate + repair) → Stage 4 (persist)
2. Incremental ranking of one new course: comparative oracle call against
   the category's top ranked courses, sentinel rank on any failure
3. Fill missing: incremental ranking of every unranked course in a
   category, chunked with bounded concurrency

Without an oracle (no OPENAI_API_KEY) incremental ranking returns the
sentinel rank without any network call, and full reranks report failure
without touching existing ranks.

Author: Course Relevancy Team
"""

import logging
import time
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Union

from config import settings
from relevancy.categories import Category, CategoryRegistry
from relevancy.errors import OracleError, OracleUnavailable
from relevancy.progress import (
    AWAITING_ORACLE,
    COMPLETED,
    FAILED,
    IDLE,
    PERSISTING,
    PROMPTING,
    SELECTING_CANDIDATES,
    VALIDATING,
    ProgressEvent,
    drain,
    log_event,
)
from relevancy.rate_control import ChunkedExecutor, chunk_list
from relevancy.schemas import Course, RankedCourse
from stages.stage1_candidate_selection import CandidateSelector
from stages.stage2_oracle_ranking import OracleRankingStage
from stages.stage3_validation import ValidationStage
from stages.stage4_persistence import ScorePersister

logger = logging.getLogger(__name__)

CategoryRef = Union[str, Category]

PERSIST_PROGRESS_STEP = 25


def _failed_result(name: str, error: str) -> Dict[str, Any]:
    return {'category': name, 'success': False, 'ranked': 0, 'failed': 0, 'total': 0, 'error': error}


class RelevancyRanker:
    """
    Entry point for every ranking workflow.

    Usage:
        ranker = RelevancyRanker(store=db, oracle=RelevancyOracle.from_settings())
        result = ranker.rerank_category('Business')
        rank = ranker.rank_new_course(course, 'Fleet')
    """

    def __init__(
        self,
        store,
        oracle=None,
        registry: Optional[CategoryRegistry] = None,
        sentinel: int = settings.RANK_SENTINEL,
        comparison_limit: int = settings.COMPARISON_LIMIT,
        executor: Optional[ChunkedExecutor] = None,
    ):
        """
        Initialize the ranker

        Args:
            store: Catalog store (CatalogDatabase or a compatible fake)
            oracle: RelevancyOracle, or None when no credential is configured
            registry: Category registry (defaults to config/categories.yml)
            sentinel: Rank used whenever ranking cannot be performed
            comparison_limit: Reference courses used for incremental ranking
            executor: Chunked executor for multi-course incremental runs
        """
        self.store = store
        self.oracle = oracle
        self.registry = registry or CategoryRegistry.from_yaml(settings.CATEGORIES_CONFIG_PATH)
        self.sentinel = sentinel
        self.comparison_limit = comparison_limit
        self.executor = executor or ChunkedExecutor()

        self.selector = CandidateSelector(store)
        self.ranking = OracleRankingStage(oracle) if oracle is not None else None
        self.validation = ValidationStage()
        self.persister = ScorePersister(store)

        if oracle is None:
            logger.warning(
                f"⚠️ Ranking oracle not configured ({OracleUnavailable.__name__}): "
                f"incremental ranks fall back to {sentinel}, full reranks are disabled"
            )

    @property
    def oracle_available(self) -> bool:
        return self.oracle is not None

    def _category(self, category: CategoryRef) -> Category:
        if isinstance(category, Category):
            return category
        return self.registry.get(category)

    # ------------------------------------------------------------------
    # Full rerank
    # ------------------------------------------------------------------

    def iter_rerank_category(self, category: CategoryRef) -> Iterator[ProgressEvent]:
        """
        Full rerank of one category as a stream of progress events.

        The final event is COMPLETED or FAILED and carries the result:
            - success: True when every course received and stored a rank
            - ranked: Number of ranks written
            - failed: Number of rank writes that failed
            - total: Number of candidate courses
            - missing / hallucinated: Repair statistics
            - top: First five (rank, course_id, title) entries
            - error: Error message if failed

        Storage errors while selecting candidates propagate.
        """
        cat = self._category(category)
        result: Dict[str, Any] = {
            'category': cat.name,
            'success': False,
            'ranked': 0,
            'failed': 0,
            'total': 0,
            'missing': [],
            'hallucinated': [],
            'top': [],
            'error': None
        }

        yield ProgressEvent(IDLE, 0, 0, cat.name)

        if self.ranking is None:
            result['error'] = "Ranking oracle not configured (OPENAI_API_KEY missing)"
            yield ProgressEvent(FAILED, 0, 0, cat.name, result)
            return

        yield ProgressEvent(SELECTING_CANDIDATES, 0, 0, cat.name)
        courses = self.selector.select_for_full_rerank(cat)
        total = len(courses)
        result['total'] = total

        if total == 0:
            logger.info(f"⚠️  No courses to rank for {cat.name}")
            result['success'] = True
            yield ProgressEvent(COMPLETED, 0, 0, cat.name, result)
            return

        yield ProgressEvent(PROMPTING, 0, total, cat.name)
        yield ProgressEvent(AWAITING_ORACLE, 0, total, cat.name)
        oracle_result = self.ranking.rank_bulk(courses, cat)
        if not oracle_result['success']:
            result['error'] = oracle_result['error']
            yield ProgressEvent(FAILED, 0, total, cat.name, result)
            return

        yield ProgressEvent(VALIDATING, 0, total, cat.name)
        validation = self.validation.execute(courses, oracle_result['rankings'], cat.name)
        result['missing'] = validation['missing']
        result['hallucinated'] = validation['hallucinated']
        if not validation['success']:
            result['error'] = validation['error']
            yield ProgressEvent(FAILED, 0, total, cat.name, result)
            return

        rankings = validation['rankings']
        yield ProgressEvent(PERSISTING, 0, total, cat.name)
        for batch in chunk_list(rankings, PERSIST_PROGRESS_STEP):
            counts = self.persister.persist(cat, batch)
            result['ranked'] += counts['succeeded']
            result['failed'] += counts['failed']
            yield ProgressEvent(PERSISTING, result['ranked'] + result['failed'], total, cat.name)

        titles = {c.id: c.title for c in courses}
        result['top'] = [(rank, course_id, titles.get(course_id, 'Unknown'))
                         for course_id, rank in sorted(rankings, key=lambda r: r[1])[:5]]

        if result['failed']:
            result['error'] = f"{result['failed']} of {total} rank updates failed"
            yield ProgressEvent(FAILED, total, total, cat.name, result)
            return

        result['success'] = True
        yield ProgressEvent(COMPLETED, total, total, cat.name, result)

    def rerank_category(
        self,
        category: CategoryRef,
        on_event: Optional[Callable[[ProgressEvent], None]] = log_event
    ) -> Dict[str, Any]:
        """Run a full rerank to completion and return its result dictionary."""
        return drain(self.iter_rerank_category(category), on_event)

    def rerank_all(
        self,
        categories: Optional[Sequence[CategoryRef]] = None,
        delay_seconds: float = settings.CATEGORY_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        on_event: Optional[Callable[[ProgressEvent], None]] = log_event,
    ) -> Dict[str, Dict[str, Any]]:
        """
        Full rerank of several categories, one after another.

        Names are matched case-insensitively. An unknown name or a failing
        category is logged and the run continues with the next one.

        Returns:
            Mapping category name -> result dictionary
        """
        results: Dict[str, Dict[str, Any]] = {}
        targets: List[Category] = []
        for ref in (categories or self.registry.names):
            cat = ref if isinstance(ref, Category) else self.registry.find(ref)
            if cat is None:
                logger.error(f"❌ Unknown category: {ref}")
                results[ref] = _failed_result(ref, f"Unknown category: {ref}")
                continue
            targets.append(cat)

        for index, cat in enumerate(targets):
            logger.info("=" * 60)
            logger.info(f"📊 Ranking courses for category: {cat.name}")
            logger.info("=" * 60)
            try:
                results[cat.name] = self.rerank_category(cat, on_event)
            except Exception as e:
                logger.error(f"❌ Error ranking courses for {cat.name}: {e}")
                logger.error("Continuing with next category...")
                results[cat.name] = _failed_result(cat.name, str(e))

            if delay_seconds > 0 and index < len(targets) - 1:
                logger.info(f"⏳ Waiting {delay_seconds:g} seconds before next category...")
                sleep(delay_seconds)

        return results

    # ------------------------------------------------------------------
    # Incremental ranking
    # ------------------------------------------------------------------

    def _reference_for(self, course_id: Optional[str], cat: Category) -> List[RankedCourse]:
        try:
            return self.selector.select_for_comparison(cat, exclude_id=course_id, limit=self.comparison_limit)
        except Exception as e:
            logger.warning(f"⚠️ Failed to fetch reference courses for {cat.name}, ranking without them: {e}")
            return []

    def rank_new_course(self, course: Course, category: CategoryRef) -> int:
        """
        Rank one course against the category's best ranked courses.

        Never raises on oracle failure: the sentinel rank is returned instead.
        Nothing is written.
        """
        cat = self._category(category)
        if self.ranking is None:
            logger.debug(f"Oracle not configured, assigning default rank {self.sentinel} ({cat.name})")
            return self.sentinel

        reference = self._reference_for(course.id, cat)
        try:
            rank = self.ranking.rank_comparative(course, reference, cat)
        except OracleError as e:
            logger.error(f"Error ranking course {course.id} for {cat.name}: {e}")
            return self.sentinel

        logger.info(f"Ranked course {course.id} at {rank} for {cat.name} (against {len(reference)} courses)")
        return rank

    def rank_new_course_all_categories(
        self,
        course: Union[str, Course],
        persist: bool = True
    ) -> Dict[str, int]:
        """
        Rank one course for every registered category.

        Args:
            course: Course or course ID
            persist: Write the ranks to the catalog

        Returns:
            Mapping category name -> rank (sentinel where ranking failed)
        """
        if isinstance(course, str):
            course_id = course
            try:
                course = self.store.get_course(course_id)
            except Exception as e:
                logger.error(f"Failed to fetch new course {course_id}: {e}")
                course = None
            if course is None:
                logger.error(f"Course {course_id} not found, using default relevancy scores")
                return {name: self.sentinel for name in self.registry.names}

        categories = list(self.registry)
        logger.info(f"🤖 Ranking new course \"{course.title}\" for {len(categories)} categories...")

        if self.ranking is None:
            ranks = {cat.name: self.sentinel for cat in categories}
        else:
            outcomes = self.executor.run(lambda cat: self.rank_new_course(course, cat), categories)
            ranks = {
                o.item.name: o.value if o.ok else self.sentinel
                for o in outcomes
            }

        logger.info("✅ Relevancy scores: " + ", ".join(f"{name}={rank}" for name, rank in ranks.items()))

        if persist:
            for cat in categories:
                self.persister.persist(cat, [(course.id, ranks[cat.name])])

        return ranks

    # ------------------------------------------------------------------
    # Fill missing
    # ------------------------------------------------------------------

    def iter_fill_missing(self, category: CategoryRef) -> Iterator[ProgressEvent]:
        """
        Incrementally rank every course with no rank in a category.

        Courses whose oracle call fails keep a null rank and are counted in
        'failed', so a later run picks them up again.
        """
        cat = self._category(category)
        result: Dict[str, Any] = {
            'category': cat.name,
            'success': False,
            'ranked': 0,
            'failed': 0,
            'total': 0,
            'error': None
        }

        yield ProgressEvent(IDLE, 0, 0, cat.name)

        if self.ranking is None:
            result['error'] = "Ranking oracle not configured (OPENAI_API_KEY missing)"
            yield ProgressEvent(FAILED, 0, 0, cat.name, result)
            return

        yield ProgressEvent(SELECTING_CANDIDATES, 0, 0, cat.name)
        unranked = self.selector.select_unranked(cat)
        total = len(unranked)
        result['total'] = total

        if total == 0:
            result['success'] = True
            yield ProgressEvent(COMPLETED, 0, 0, cat.name, result)
            return

        reference = self._reference_for(None, cat)
        processed = 0

        def rank_one(course: Course) -> int:
            return self.ranking.rank_comparative(course, reference, cat)

        for chunk in self.executor.map(rank_one, unranked):
            processed += len(chunk.outcomes)
            yield ProgressEvent(AWAITING_ORACLE, processed, total, cat.name)

            accepted = []
            for outcome in chunk.outcomes:
                if outcome.ok:
                    accepted.append((outcome.item.id, outcome.value))
                else:
                    logger.error(f"Failed to rank course {outcome.item.id} for {cat.name}: {outcome.error}")
                    result['failed'] += 1

            counts = self.persister.persist(cat, accepted)
            result['ranked'] += counts['succeeded']
            result['failed'] += counts['failed']
            yield ProgressEvent(PERSISTING, processed, total, cat.name)

        if result['failed']:
            result['error'] = f"{result['failed']} of {total} courses could not be ranked"
            yield ProgressEvent(FAILED, processed, total, cat.name, result)
            return

        result['success'] = True
        yield ProgressEvent(COMPLETED, processed, total, cat.name, result)

    def fill_missing(
        self,
        category: CategoryRef,
        on_event: Optional[Callable[[ProgressEvent], None]] = log_event
    ) -> Dict[str, Any]:
        """Run iter_fill_missing to completion and return its result dictionary."""
        return drain(self.iter_fill_missing(category), on_event)

    # ------------------------------------------------------------------
    # Category lifecycle
    # ------------------------------------------------------------------

    def initialize_category(self, category: Category) -> Dict[str, Any]:
        """
        Create the rank column for a new category and rank the full catalog.
        """
        self.store.add_rank_column(category)
        return self.rerank_category(category)

    def clear_category(self, category: CategoryRef) -> int:
        """Null out every rank of a category. Returns the number of rows cleared."""
        cat = self._category(category)
        return self.store.clear_rank_column(cat)


def build_ranker(include_landing_pages: bool = True, database_url: Optional[str] = None) -> RelevancyRanker:
    """
    Build a RelevancyRanker wired to PostgreSQL and OpenAI from settings.

    Landing-page categories are merged into the static registry when
    include_landing_pages is set; if they cannot be read the static
    categories are used alone.
    """
    from relevancy.catalog_db import CatalogDatabase
    from relevancy.llm import RelevancyOracle
    from relevancy.token_tracker import TokenTracker

    store = CatalogDatabase(database_url or settings.DATABASE_URL)
    oracle = RelevancyOracle.from_settings(tracker=TokenTracker(store=store))
    registry = CategoryRegistry.from_yaml(settings.CATEGORIES_CONFIG_PATH)

    if include_landing_pages:
        try:
            registry = registry.with_landing_pages(store.get_landing_pages())
        except Exception as e:
            logger.warning(f"⚠️ Could not load landing page categories, using static categories only: {e}")

    return RelevancyRanker(store=store, oracle=oracle, registry=registry)
