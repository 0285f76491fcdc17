"""
Lookup Indexes

Two structures that keep large catalogs cheap to score:

- CourseIndex: a student's courses keyed by course id, built once per
  batch so each requirement is a dict lookup instead of a scan.
- ProgramIndex: the catalog bucketed by points minimum, field and
  country, used to prefilter candidates before scoring.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set

from .contracts import ProgramRequirements, StudentAcademicProfile, StudentCourse
from .constants import POINTS_BUCKET_SIZE, PREFILTER_POINTS_MARGIN


# =============================================================================
# STUDENT COURSES
# =============================================================================

class CourseIndex:
    """Student courses grouped by course id, in their original order."""

    def __init__(self, courses: Iterable[StudentCourse]):
        self.courses: List[StudentCourse] = list(courses)
        self._by_id: Dict[str, List[StudentCourse]] = defaultdict(list)
        for course in self.courses:
            self._by_id[course.course_id].append(course)

    def courses_for(self, course_id: str) -> List[StudentCourse]:
        return self._by_id.get(course_id, [])

    def has_course(self, course_id: str) -> bool:
        return course_id in self._by_id

    def __len__(self) -> int:
        return len(self.courses)


# =============================================================================
# PROGRAM CATALOG
# =============================================================================

def points_bucket(min_points: Optional[int]) -> int:
    """Programs with no stated minimum share bucket 0 with the 0-4 range."""
    if min_points is None:
        return 0
    return (min_points // POINTS_BUCKET_SIZE) * POINTS_BUCKET_SIZE


class ProgramIndex:
    """
    Catalog index for candidate prefiltering.

    filter_candidates intersects every applicable dimension:
    - points: buckets within +/- margin of the student's total, plus bucket 0
    - field: the student's preferred fields, unless none or open to all
    - country: the student's preferred countries, unless none or open to all

    Input order is preserved in the output.
    """

    def __init__(self, programs: Iterable[ProgramRequirements]):
        self.programs: List[ProgramRequirements] = list(programs)
        self.by_points_bucket: Dict[int, Set[str]] = defaultdict(set)
        self.by_field: Dict[str, Set[str]] = defaultdict(set)
        self.by_country: Dict[str, Set[str]] = defaultdict(set)

        for program in self.programs:
            pid = program.program_id
            self.by_points_bucket[points_bucket(program.min_ib_points)].add(pid)
            if program.field_id:
                self.by_field[program.field_id].add(pid)
            if program.country_id:
                self.by_country[program.country_id].add(pid)

    def __len__(self) -> int:
        return len(self.programs)

    def filter_by_points(self, student_points: int, margin: int = PREFILTER_POINTS_MARGIN) -> Set[str]:
        low = points_bucket(max(0, student_points - margin))
        high = points_bucket(student_points + margin)
        ids = set(self.by_points_bucket.get(0, set()))
        for bucket in range(low, high + 1, POINTS_BUCKET_SIZE):
            ids |= self.by_points_bucket.get(bucket, set())
        return ids

    def filter_by_fields(self, field_ids: Iterable[str]) -> Set[str]:
        ids: Set[str] = set()
        for field_id in field_ids:
            ids |= self.by_field.get(field_id, set())
        return ids

    def filter_by_countries(self, country_ids: Iterable[str]) -> Set[str]:
        ids: Set[str] = set()
        for country_id in country_ids:
            ids |= self.by_country.get(country_id, set())
        return ids

    def filter_candidates(
        self,
        student: StudentAcademicProfile,
        points_margin: int = PREFILTER_POINTS_MARGIN
    ) -> List[ProgramRequirements]:
        sets: List[Set[str]] = []

        if student.total_ib_points is not None:
            sets.append(self.filter_by_points(student.total_ib_points, points_margin))
        if student.preferred_fields and not student.open_to_all_fields:
            sets.append(self.filter_by_fields(student.preferred_fields))
        if student.preferred_countries and not student.open_to_all_locations:
            sets.append(self.filter_by_countries(student.preferred_countries))

        if not sets:
            return list(self.programs)

        keep = set.intersection(*sets)
        return [p for p in self.programs if p.program_id in keep]
