from datetime import datetime

from pydantic import BaseModel


class AuditInfo(BaseModel):
    created_by: str
    updated_at: datetime | None = None
