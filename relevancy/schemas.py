"""
Pydantic schemas for courses and oracle payloads.
"""
from pydantic import BaseModel, ConfigDict, Field, StrictInt
from typing import List, Optional


class Course(BaseModel):
    """Course summary as read from the catalog (read-only for ranking)."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Stable course identifier")
    title: str = Field(..., description="Course title")
    description: Optional[str] = Field(None, description="Free-text description")
    key_skills: Optional[str] = Field(None, description="Free-text list of key skills")
    provider: Optional[str] = Field(None, description="Course provider")
    tag: Optional[str] = Field(None, description="Primary tag")

    @classmethod
    def from_row(cls, row: dict) -> 'Course':
        return cls(
            id=str(row['id']),
            title=row.get('title') or '',
            description=row.get('description'),
            key_skills=row.get('key_skills'),
            provider=row.get('provider'),
            tag=row.get('tag'),
        )


class RankedCourse(BaseModel):
    """A course together with its current rank in one category."""
    model_config = ConfigDict(frozen=True)

    course: Course
    rank: int


class CourseRanking(BaseModel):
    """One (courseId, rank) pair as returned by the oracle."""
    courseId: str = Field(..., min_length=1)
    rank: StrictInt = Field(..., gt=0)


class BulkRankingResponse(BaseModel):
    """Expected oracle answer for a bulk ranking request."""
    rankings: List[CourseRanking]


class ComparativeRankingResponse(BaseModel):
    """Expected oracle answer for a comparative ranking request."""
    rank: StrictInt = Field(..., gt=0)


class BulkRankingRequest(BaseModel):
    """Bulk request: rank every course for one category."""
    category: str
    contextDescription: str
    items: List[dict]


class ComparativeRankingRequest(BaseModel):
    """Comparative request: place one new course against ranked references."""
    category: str
    contextDescription: str
    newItem: dict
    referenceItems: List[dict]
    upperBound: int
