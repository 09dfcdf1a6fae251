from typing import Literal

from pydantic import Field, field_validator

from versionboard.core.schemas import CamelModel

Role = Literal["admin", "user"]


class UserInput(CamelModel):
    username: str = Field(..., min_length=1)
    role: Role = "user"

    @field_validator("username")
    @classmethod
    def strip_username(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Username is required")
        return value


class User(CamelModel):
    id: str
    username: str
    role: Role


class UserResponse(CamelModel):
    user: User
