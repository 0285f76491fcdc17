# Export all matching models for easy imports
from .base import Base
from .reference import Country, FieldOfStudy, IBCourse
from .university import University
from .program import AcademicProgram, CourseRequirement
from .student import (
    StudentProfile,
    StudentCourse,
    StudentPreferredField,
    StudentPreferredCountry,
)

__all__ = [
    "Base",
    "Country",
    "FieldOfStudy",
    "IBCourse",
    "University",
    "AcademicProgram",
    "CourseRequirement",
    "StudentProfile",
    "StudentCourse",
    "StudentPreferredField",
    "StudentPreferredCountry",
]
