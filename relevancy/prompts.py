"""
Prompt builders for the ranking oracle.

Two request shapes:
- bulk: rank every supplied course for one category, each ID exactly once
- comparative: place one new course against already-ranked reference courses

Course IDs are copied verbatim into the prompt; the oracle must echo them
unchanged, anything else is treated as hallucinated.
"""

import json
from typing import List, Optional, Sequence, Tuple

from config import settings
from .categories import Category
from .schemas import BulkRankingRequest, ComparativeRankingRequest, Course, RankedCourse

SYSTEM_PROMPT_COMPARATIVE = (
    'You are an expert at ranking educational courses. '
    'Return ONLY valid JSON with a "rank" field containing a number.'
)


def _truncate(text: Optional[str], limit: int, ellipsis: bool = False) -> str:
    if not text:
        return ''
    if len(text) <= limit:
        return text
    return text[:limit] + ('...' if ellipsis else '')


def _course_payload(course: Course, description_chars: int, ellipsis: bool = False) -> dict:
    payload = {'id': course.id, 'title': course.title}
    if course.description:
        payload['description'] = _truncate(course.description, description_chars, ellipsis=ellipsis)
    if course.key_skills:
        payload['keySkills'] = course.key_skills
    if course.provider:
        payload['provider'] = course.provider
    return payload


def comparative_upper_bound(reference: Sequence[RankedCourse],
                            minimum: int = settings.COMPARISON_MIN_UPPER_BOUND) -> int:
    """Highest rank a new course may receive: max(existing ranks, minimum)."""
    return max([r.rank for r in reference] + [minimum])


def build_bulk_request(
    courses: Sequence[Course],
    category: Category,
    description_chars: int = settings.BULK_DESCRIPTION_CHARS
) -> BulkRankingRequest:
    return BulkRankingRequest(
        category=category.name,
        contextDescription=category.context,
        items=[_course_payload(c, description_chars, ellipsis=True) for c in courses],
    )


def build_comparative_request(
    new_course: Course,
    reference: Sequence[RankedCourse],
    category: Category,
    new_description_chars: int = settings.NEW_COURSE_DESCRIPTION_CHARS,
    reference_description_chars: int = settings.REFERENCE_DESCRIPTION_CHARS,
) -> ComparativeRankingRequest:
    new_item = _course_payload(new_course, new_description_chars)
    if new_course.tag:
        new_item['tag'] = new_course.tag

    reference_items = []
    for ranked in sorted(reference, key=lambda r: r.rank):
        item = {'id': ranked.course.id, 'title': ranked.course.title, 'rank': ranked.rank}
        if ranked.course.description:
            item['description'] = _truncate(ranked.course.description, reference_description_chars, ellipsis=True)
        reference_items.append(item)

    return ComparativeRankingRequest(
        category=category.name,
        contextDescription=category.context,
        newItem=new_item,
        referenceItems=reference_items,
        upperBound=comparative_upper_bound(reference),
    )


def build_bulk_prompt(request: BulkRankingRequest) -> Tuple[str, str]:
    """
    Build (system_prompt, user_prompt) for a bulk ranking request.

    The count is restated several times; models tend to stop early on
    long lists otherwise.
    """
    total = len(request.items)

    system_prompt = (
        "You are an expert at ranking educational courses. You MUST rank ALL courses provided - "
        "never skip any. Always return valid JSON only, no additional text. "
        f"The rankings array must contain exactly {total} entries, one for each course provided. "
        f"Each course must have a unique rank from 1 to {total}."
    )

    blocks = []
    for index, item in enumerate(request.items, start=1):
        lines = [
            f"Course {index} of {total}:",
            f"Course ID: {item['id']}",
            f"Title: {item['title']}",
            f"Description: {item['description']}" if item.get('description') else 'No description',
        ]
        if item.get('keySkills'):
            lines.append(f"Key Skills: {item['keySkills']}")
        if item.get('provider'):
            lines.append(f"Provider: {item['provider']}")
        lines.append('---')
        blocks.append('\n'.join(lines))

    courses_text = '\n\n'.join(blocks)

    user_prompt = f"""You are an expert at ranking educational courses by their relevance to specific business categories.

Category: {request.category}
Context: {request.contextDescription}

You MUST rank ALL {total} courses below. Do not skip any courses.

Here are the {total} courses to rank:

{courses_text}

CRITICAL REQUIREMENTS:
1. You MUST rank ALL {total} courses - no exceptions
2. Rank 1 = most relevant, Rank {total} = least relevant
3. Every course must have a unique rank (no ties, no duplicates)
4. Use the EXACT courseId values shown above (copy them exactly)
5. Every supplied course ID must appear exactly once in the rankings

Return ONLY valid JSON in this exact format:
{{
  "rankings": [
    {{ "courseId": "exact-id-from-above", "rank": 1 }},
    {{ "courseId": "exact-id-from-above", "rank": 2 }},
    ... continue for all {total} courses ...
  ]
}}

Verify: Your response must contain exactly {total} entries in the rankings array."""

    return system_prompt, user_prompt


def build_comparative_prompt(request: ComparativeRankingRequest) -> Tuple[str, str]:
    """Build (system_prompt, user_prompt) for a comparative ranking request."""
    new_item = request.newItem
    new_lines = [
        f"Course ID: {new_item['id']}",
        f"Title: {new_item['title']}",
        f"Description: {new_item['description']}" if new_item.get('description') else 'No description',
    ]
    if new_item.get('keySkills'):
        new_lines.append(f"Key Skills: {new_item['keySkills']}")
    if new_item.get('provider'):
        new_lines.append(f"Provider: {new_item['provider']}")
    if new_item.get('tag'):
        new_lines.append(f"Tag: {new_item['tag']}")

    reference_lines: List[str] = []
    for index, item in enumerate(request.referenceItems, start=1):
        reference_lines.append(f"{index}. Rank {item['rank']}: {item['title']}")
        reference_lines.append(f"   {item.get('description') or 'No description'}")

    reference_text = '\n'.join(reference_lines) if reference_lines else '(no ranked courses yet)'
    new_course_text = '\n'.join(new_lines)

    user_prompt = f"""You are an expert at ranking educational courses by their relevance to specific business categories.

Category: {request.category}
Context: {request.contextDescription}

You need to rank a NEW course relative to {len(request.referenceItems)} existing courses.

NEW COURSE TO RANK:
{new_course_text}

EXISTING COURSES (for reference, ranked by relevancy):
{reference_text}

Based on the NEW COURSE's content and how it compares to the existing courses, determine its relevancy rank for the {request.category} category.

Return ONLY a JSON object with a single number representing the rank:
{{
  "rank": <number>
}}

The rank should be:
- A number between 1 and {request.upperBound}
- Lower number = more relevant (rank 1 = most relevant)
- If the new course is more relevant than existing courses, it could be rank 1
- If less relevant, it should be a higher number

Return ONLY the JSON, no additional text."""

    return SYSTEM_PROMPT_COMPARATIVE, user_prompt


def request_as_json(request) -> str:
    """Serialize a request payload for debug logging."""
    return json.dumps(request.model_dump(), ensure_ascii=False, indent=2)
