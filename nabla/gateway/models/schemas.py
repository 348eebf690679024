"""
API request/response schemas.
"""

from pydantic import BaseModel


class LoadResponse(BaseModel):
    """Response of POST /api/load"""

    functionId: str
    imageId: str
    language: str
    handler: str
    message: str


class ExecuteResponse(BaseModel):
    """Response of GET /api/execute"""

    functionId: str
    imageId: str
    output: str
    exitCode: int


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    functions: int
