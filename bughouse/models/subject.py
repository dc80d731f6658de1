"""Subject model definitions."""

from sqlalchemy import Column, Integer, String
from bughouse.database import Base


class Subject(Base):
    """A tutored subject. Maintained by the course catalogue, only referenced here."""
    __tablename__ = "subjects"

    id = Column(Integer, primary_key=True)
    name = Column(String, unique=True, nullable=False)
