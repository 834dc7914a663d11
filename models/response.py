from pydantic import BaseModel


class BasicResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str
    version: str
    buffered_events: int
