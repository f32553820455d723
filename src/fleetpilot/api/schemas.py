"""
API request and response schemas.

Request bodies mirror what the browser runner sends; responses are built
from the domain objects' ``to_dict`` output.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from fleetpilot.core.domain.models import ActionOutcome, DecisionState, TaskDescriptor


class DecideRequest(BaseModel):
    """Observed state for one decision."""

    session_id: str
    goal: str
    task_id: Optional[str] = None
    current_url: Optional[str] = None
    error: Optional[str] = None
    attempt: Optional[int] = None
    previous_actions: List[Any] = Field(default_factory=list)
    verification_results: List[Dict[str, Any]] = Field(default_factory=list)
    screenshot_base64: Optional[str] = None

    def to_state(self) -> DecisionState:
        return DecisionState(
            session_id=self.session_id,
            goal=self.goal,
            current_url=self.current_url,
            error=self.error,
            attempt=self.attempt,
            previous_actions=list(self.previous_actions),
            verification_results=list(self.verification_results),
            screenshot_base64=self.screenshot_base64,
            task_id=self.task_id,
        )


class VerifyRequest(BaseModel):
    session_id: Optional[str] = None
    action_index: Optional[int] = None
    action_type: Optional[str] = None
    verification_criteria: List[Dict[str, Any]] = Field(default_factory=list)
    before_state: Dict[str, Any] = Field(default_factory=dict)
    after_state: Dict[str, Any] = Field(default_factory=dict)
    dom_changes: Dict[str, Any] = Field(default_factory=dict)
    network_requests: List[Any] = Field(default_factory=list)


class TaskModel(BaseModel):
    """Task fields used to derive the goal and start URL."""

    target_platform: str = "generic"
    goal_type: str = "browse"
    target_url: Optional[str] = None
    search_query: Optional[str] = None
    description: Optional[str] = None
    entry_method: Optional[str] = None
    task_id: Optional[str] = None

    def to_descriptor(self) -> TaskDescriptor:
        return TaskDescriptor(**self.model_dump())


class StartRequest(BaseModel):
    session_id: str
    task: TaskModel = Field(default_factory=TaskModel)


class ReportRequest(BaseModel):
    """Outcome of the action the runner just executed."""

    session_id: str
    action_result: Optional[str] = None
    current_url: Optional[str] = None
    error: Optional[str] = None
    screenshot_base64: Optional[str] = None
    verification_data: Optional[Dict[str, Any]] = None

    def to_outcome(self) -> ActionOutcome:
        return ActionOutcome(**self.model_dump())


class CreateSessionRequest(BaseModel):
    goal: str = ""
    task_id: Optional[str] = None
    profile_id: Optional[str] = None
    priority: int = 0
    metadata: Dict[str, Any] = Field(default_factory=dict)


class CancelSessionRequest(BaseModel):
    reason: Optional[str] = None


class CreateBotRequest(BaseModel):
    session_id: str
    task_id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None


class ExecuteBotRequest(BaseModel):
    profile_id: Optional[str] = None
    count: int = Field(default=1, ge=1, le=100)


class ExecuteBotResponse(BaseModel):
    success: bool
    sessions_created: int
    session_ids: List[str]
