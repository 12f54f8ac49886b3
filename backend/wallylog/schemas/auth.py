from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    password: str | None = Field(default=None, max_length=512)
    token: str | None = Field(default=None, max_length=5000)


class LoginResponse(BaseModel):
    success: bool = True
    message: str


class SessionResponse(BaseModel):
    authenticated: bool = True
    role: str
