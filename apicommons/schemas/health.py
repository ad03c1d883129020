"""
ApiCommons — Health Schema
===========================

What:  Payload of the /health envelope.
"""

from pydantic import BaseModel, Field


class HealthStatus(BaseModel):
    status: str = Field(description="Overall status: healthy, unhealthy")
    version: str = Field(description="Library version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    transactional_endpoints: int = Field(description="Endpoints carrying a transaction declaration")
    uptime_seconds: float = Field(description="Seconds since the process started")
