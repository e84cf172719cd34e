"""
Workflow Step Checkpoints
=========================

One row per (run, step). The workflow engine writes a row when a step
finishes so a re-run of the same run id replays the recorded output
instead of executing the step again.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel, Column, Text

STEP_SUCCESS = "success"
STEP_FAILED = "failed"


class WorkflowStep(SQLModel, table=True):
    __tablename__ = "workflow_steps"
    __table_args__ = (UniqueConstraint("run_id", "step_name", name="uq_workflow_run_step"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    run_id: str = Field(index=True, max_length=64)
    workflow: str = Field(max_length=64)
    step_name: str = Field(max_length=64)
    status: str = Field(default=STEP_SUCCESS, max_length=16)
    attempts: int = Field(default=0)
    output_json: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    error: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = Field(default=None, nullable=True)
