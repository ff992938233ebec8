from pydantic import BaseModel


class LoginResponse(BaseModel):
    """Where the browser should go to continue the delegated OAuth flow"""
    url: str
