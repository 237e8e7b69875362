# tanapark/models/user.py
"""
Staff accounts (system admin, manager, valet).
A valet's price_level selects which rates apply to the vehicles they register.
"""

from sqlalchemy import Column, Integer, String
from tanapark.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    phone_number = Column(String(20), unique=True, nullable=False, index=True)
    type = Column(String(20), nullable=False)       # system_admin | manager | valet
    park_zone_code = Column(String(100), default="")
    price_level = Column(String(100))

    def __repr__(self):
        return f"<User {self.id} {self.name} type={self.type} level={self.price_level}>"
