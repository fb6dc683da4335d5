import enum

from sqlalchemy import Column, Enum, Integer, String
from sqlalchemy.orm import relationship

from recipebook.db.base_class import Base, TimestampMixin


class UnitType(str, enum.Enum):
    WEIGHT = "WEIGHT"
    VOLUME = "VOLUME"
    COUNT = "COUNT"
    OTHER = "OTHER"


class UnitOfMeasure(TimestampMixin, Base):
    __tablename__ = "units_of_measure"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), unique=True, nullable=False)
    abbreviation = Column(String(20), unique=True, nullable=True)
    type = Column(Enum(UnitType, name="unit_type"), nullable=True)

    yield_recipes = relationship("Recipe", back_populates="yield_unit", passive_deletes=True)
    unit_quantities = relationship("UnitQuantity", back_populates="unit", passive_deletes=True)
