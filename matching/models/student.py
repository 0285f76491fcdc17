from sqlalchemy import Boolean, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from .base import Base


class StudentProfile(Base):
    __tablename__ = "student_profiles"

    id = Column(String, primary_key=True)
    user_id = Column(String, unique=True)

    # IB results
    total_ib_points = Column(Integer)
    tok_grade = Column(String(1))
    ee_grade = Column(String(1))
    grades_are_final = Column(Boolean, default=False, nullable=False)

    # Preferences
    open_to_all_fields = Column(Boolean, default=False, nullable=False)
    open_to_all_locations = Column(Boolean, default=False, nullable=False)

    courses = relationship("StudentCourse", back_populates="student", cascade="all, delete-orphan")
    preferred_fields = relationship(
        "StudentPreferredField",
        order_by="StudentPreferredField.rank",
        cascade="all, delete-orphan",
    )
    preferred_countries = relationship(
        "StudentPreferredCountry",
        order_by="StudentPreferredCountry.rank",
        cascade="all, delete-orphan",
    )


class StudentCourse(Base):
    __tablename__ = "student_courses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    student_id = Column(String, ForeignKey("student_profiles.id"), nullable=False)
    ib_course_id = Column(String, ForeignKey("ib_courses.id"), nullable=False)
    level = Column(String(2), nullable=False)
    grade = Column(Integer)

    student = relationship("StudentProfile", back_populates="courses")
    ib_course = relationship("IBCourse")


class StudentPreferredField(Base):
    __tablename__ = "student_preferred_fields"

    student_id = Column(String, ForeignKey("student_profiles.id"), primary_key=True)
    field_of_study_id = Column(String, ForeignKey("fields_of_study.id"), primary_key=True)
    rank = Column(Integer, default=0, nullable=False)


class StudentPreferredCountry(Base):
    __tablename__ = "student_preferred_countries"

    student_id = Column(String, ForeignKey("student_profiles.id"), primary_key=True)
    country_id = Column(String, ForeignKey("countries.id"), primary_key=True)
    rank = Column(Integer, default=0, nullable=False)
