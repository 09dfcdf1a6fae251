from sqlalchemy import Column, String

from versionboard.db import Base


class UserModel(Base):
    __tablename__ = "users"

    id = Column(String(32), primary_key=True)
    username = Column(String, nullable=False, unique=True, index=True)
    role = Column(String, nullable=False, default="user")
