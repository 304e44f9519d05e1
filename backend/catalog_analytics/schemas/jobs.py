from pydantic import BaseModel
from typing import Dict, Optional
from datetime import datetime


class JobStatusItem(BaseModel):
    running: bool
    last_run: Optional[datetime] = None
    last_duration_ms: Optional[float] = None
    last_succeeded: Optional[bool] = None


class JobStatusResponse(BaseModel):
    scheduled: bool
    jobs: Dict[str, JobStatusItem]


class TriggerJobResponse(BaseModel):
    job: str
    accepted: bool
    already_running: bool  # The run will be skipped by the overlap guard
