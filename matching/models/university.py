from sqlalchemy import Column, ForeignKey, String
from sqlalchemy.orm import relationship

from .base import Base


class University(Base):
    __tablename__ = "universities"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    country_id = Column(String, ForeignKey("countries.id"), nullable=False)

    country = relationship("Country", back_populates="universities")
    programs = relationship("AcademicProgram", back_populates="university")
