from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship

from .base import Base


class Country(Base):
    __tablename__ = "countries"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    code = Column(String(2))

    universities = relationship("University", back_populates="country")


class FieldOfStudy(Base):
    __tablename__ = "fields_of_study"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)

    programs = relationship("AcademicProgram", back_populates="field_of_study")


class IBCourse(Base):
    __tablename__ = "ib_courses"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    code = Column(String)
    group = Column(Integer)  # IB subject group 1-6
