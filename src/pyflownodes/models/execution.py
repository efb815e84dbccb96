"""Visibility record of one workflow execution."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from pyflownodes.models.status import WorkflowStatus


@dataclass
class WorkflowExecution:
    """
    What the visibility store knows about a workflow run.

    Attributes:
        workflow_id: Caller-chosen workflow id
        run_id: Unique id of this run (uuid7)
        workflow_type: Registered workflow type name
        task_queue: Queue the worker serves
        status: Lifecycle status
        start_time: Worker-clock time the run started
        close_time: Worker-clock time the run closed, None while running
        search_attributes: Indexed attributes, each a list of values
        memo: Unindexed caller metadata
        result: Workflow result (JSON-serializable form) when completed
        error: Error message when failed or cancelled
        parent_workflow_id: Parent id for child workflows
    """

    workflow_id: str
    run_id: str
    workflow_type: str
    task_queue: str
    start_time: datetime
    status: WorkflowStatus = WorkflowStatus.RUNNING
    close_time: datetime | None = None
    search_attributes: dict[str, list[Any]] = field(default_factory=dict)
    memo: dict[str, Any] = field(default_factory=dict)
    result: Any = None
    error: str | None = None
    parent_workflow_id: str | None = None

    def is_running(self) -> bool:
        return self.status == WorkflowStatus.RUNNING

    def copy(self) -> WorkflowExecution:
        """Detached copy, so stores never hand out their own mutable record."""
        return replace(
            self,
            search_attributes={k: list(v) for k, v in self.search_attributes.items()},
            memo=dict(self.memo),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "run_id": self.run_id,
            "workflow_type": self.workflow_type,
            "task_queue": self.task_queue,
            "status": self.status.value,
            "start_time": self.start_time.isoformat(),
            "close_time": self.close_time.isoformat() if self.close_time else None,
            "search_attributes": self.search_attributes,
            "memo": self.memo,
            "result": self.result,
            "error": self.error,
            "parent_workflow_id": self.parent_workflow_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkflowExecution:
        close_time = data.get("close_time")
        return cls(
            workflow_id=data["workflow_id"],
            run_id=data["run_id"],
            workflow_type=data["workflow_type"],
            task_queue=data["task_queue"],
            status=WorkflowStatus(data["status"]),
            start_time=datetime.fromisoformat(data["start_time"]),
            close_time=datetime.fromisoformat(close_time) if close_time else None,
            search_attributes={k: list(v) for k, v in (data.get("search_attributes") or {}).items()},
            memo=dict(data.get("memo") or {}),
            result=data.get("result"),
            error=data.get("error"),
            parent_workflow_id=data.get("parent_workflow_id"),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    @classmethod
    def from_json(cls, text: str | bytes) -> WorkflowExecution:
        return cls.from_dict(json.loads(text))
