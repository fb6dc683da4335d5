from sqlalchemy import Column, Integer, String, Text
from sqlalchemy.orm import relationship

from recipebook.db.base_class import Base, TimestampMixin


class Category(TimestampMixin, Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text)

    recipes = relationship("Recipe", back_populates="category", passive_deletes=True)
