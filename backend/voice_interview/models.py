from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class SessionRecord(SQLModel, table=True):
    id: str = Field(primary_key=True)
    user_id: str = Field(index=True)
    user_email: Optional[str] = Field(default=None)
    interview_type: str
    start_time: datetime = Field(default_factory=datetime.utcnow)
    end_time: Optional[datetime] = Field(default=None)
    total_tokens: int = Field(default=0)
    completed: bool = Field(default=False)
