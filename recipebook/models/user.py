from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship

from recipebook.db.base_class import Base, TimestampMixin


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=True)
    password = Column(String, nullable=False)  # bcrypt hash

    recipes = relationship("Recipe", back_populates="user", passive_deletes=True)
