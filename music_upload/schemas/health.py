from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str
    version: str
    active_uploads: int = 0
    library_writable: bool | None = None


class VersionResponse(BaseModel):
    name: str
    version: str
    git_sha: str
    build_time: str
