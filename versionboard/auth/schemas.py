from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)


class MessageResponse(BaseModel):
    message: str
