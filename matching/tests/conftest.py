"""
Shared fixtures: fakeredis client, an in-memory SQLite catalog and
builders for raw student / program records.
"""

import fakeredis
import pytest
import redis
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from db import Base
from matching.models import (
    AcademicProgram,
    Country,
    CourseRequirement,
    FieldOfStudy,
    IBCourse,
    StudentCourse,
    StudentPreferredCountry,
    StudentPreferredField,
    StudentProfile,
    University,
)


# =============================================================================
# RAW RECORD BUILDERS
# =============================================================================

COURSES = {
    "math": ("Mathematics", 5),
    "phys": ("Physics", 4),
    "chem": ("Chemistry", 4),
    "eng": ("English A", 1),
}


def ib_course(course_id):
    name, group = COURSES[course_id]
    return {"id": course_id, "name": name, "group": group}


def raw_course(course_id, level, grade=None):
    return {"ib_course": ib_course(course_id), "level": level, "grade": grade}


def raw_requirement(course_id, level, min_grade=None, is_critical=False, group_id=None, group_operator=None):
    return {
        "ib_course": ib_course(course_id),
        "required_level": level,
        "min_grade": min_grade,
        "is_critical": is_critical,
        "group_id": group_id,
        "group_operator": group_operator,
    }


def raw_student(student_id="s-1", points=38, courses=None, fields=None, countries=None, **extra):
    record = {
        "id": student_id,
        "total_ib_points": points,
        "courses": courses or [],
        "preferred_fields": [{"field_id": f, "rank": i} for i, f in enumerate(fields or [])],
        "preferred_countries": [{"country_id": c, "rank": i} for i, c in enumerate(countries or [])],
    }
    record.update(extra)
    return record


def raw_program(program_id="p-1", min_points=34, requirements=None, field_id="f-cs", country_id="c-nl", **extra):
    record = {
        "id": program_id,
        "name": f"Program {program_id}",
        "min_ib_points": min_points,
        "university": {"id": "u-1", "name": "Test University", "country": {"id": country_id}},
        "field_of_study": {"id": field_id},
        "course_requirements": requirements or [],
    }
    record.update(extra)
    return record


# =============================================================================
# REDIS
# =============================================================================

class BrokenRedis:
    """Every call fails the way an unreachable server does."""

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise redis.ConnectionError("connection refused")
        return fail


@pytest.fixture
def redis_client():
    client = fakeredis.FakeRedis(decode_responses=True)
    yield client
    client.flushall()


# =============================================================================
# DATABASE
# =============================================================================

def seed_catalog(session):
    session.add_all([
        Country(id="c-nl", name="Netherlands", code="NL"),
        Country(id="c-uk", name="United Kingdom", code="GB"),
        FieldOfStudy(id="f-cs", name="Computer Science"),
        FieldOfStudy(id="f-med", name="Medicine"),
    ])
    session.add_all([IBCourse(id=cid, name=name, group=group) for cid, (name, group) in COURSES.items()])
    session.add_all([
        University(id="u-tud", name="TU Delft", country_id="c-nl"),
        University(id="u-ucl", name="University College London", country_id="c-uk"),
    ])
    session.flush()

    session.add_all([
        AcademicProgram(id="p-cs-tud", name="Computer Science", university_id="u-tud",
                        field_of_study_id="f-cs", min_ib_points=34),
        AcademicProgram(id="p-med-ucl", name="Medicine", university_id="u-ucl",
                        field_of_study_id="f-med", min_ib_points=38),
        AcademicProgram(id="p-open", name="Liberal Arts", university_id="u-ucl",
                        field_of_study_id="f-cs", min_ib_points=None, requirements_verified=False),
    ])
    session.flush()

    session.add_all([
        CourseRequirement(program_id="p-cs-tud", ib_course_id="math", required_level="HL",
                          min_grade=6, is_critical=True),
        CourseRequirement(program_id="p-med-ucl", ib_course_id="chem", required_level="HL",
                          min_grade=6, group_id="g-sci"),
        CourseRequirement(program_id="p-med-ucl", ib_course_id="phys", required_level="HL",
                          min_grade=6, group_id="g-sci"),
    ])

    session.add_all([
        StudentProfile(id="s-1", user_id="user-1", total_ib_points=38, tok_grade="A", ee_grade="B"),
        StudentProfile(id="s-empty", user_id="user-2"),
    ])
    session.flush()
    session.add_all([
        StudentCourse(student_id="s-1", ib_course_id="math", level="HL", grade=7),
        StudentCourse(student_id="s-1", ib_course_id="phys", level="HL", grade=6),
        StudentCourse(student_id="s-1", ib_course_id="eng", level="SL", grade=6),
        StudentPreferredField(student_id="s-1", field_of_study_id="f-cs", rank=0),
        StudentPreferredCountry(student_id="s-1", country_id="c-nl", rank=0),
    ])
    session.commit()


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    with factory() as session:
        seed_catalog(session)
    yield factory
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    with session_factory() as session:
        yield session
