from sqlalchemy import Boolean, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from .base import Base


class AcademicProgram(Base):
    __tablename__ = "academic_programs"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    university_id = Column(String, ForeignKey("universities.id"), nullable=False)
    field_of_study_id = Column(String, ForeignKey("fields_of_study.id"))

    # Admission requirements
    min_ib_points = Column(Integer)  # NULL = no stated minimum
    requirements_verified = Column(Boolean, default=True, nullable=False)

    university = relationship("University", back_populates="programs")
    field_of_study = relationship("FieldOfStudy", back_populates="programs")
    course_requirements = relationship(
        "CourseRequirement",
        back_populates="program",
        order_by="CourseRequirement.id",
        cascade="all, delete-orphan",
    )


class CourseRequirement(Base):
    __tablename__ = "course_requirements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    program_id = Column(String, ForeignKey("academic_programs.id"), nullable=False)
    ib_course_id = Column(String, ForeignKey("ib_courses.id"), nullable=False)

    required_level = Column(String(2), nullable=False)  # HL / SL
    min_grade = Column(Integer)
    is_critical = Column(Boolean, default=False, nullable=False)

    # Rows sharing a group_id are alternatives (OR) unless group_operator says AND
    group_id = Column(String)
    group_operator = Column(String(3))

    program = relationship("AcademicProgram", back_populates="course_requirements")
    ib_course = relationship("IBCourse")
