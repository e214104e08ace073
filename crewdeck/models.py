from pydantic import BaseModel, Field
from typing import List, Optional, Literal
from enum import Enum
import uuid
from datetime import datetime, timezone

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class ExecutionStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not ExecutionStatus.RUNNING

class LogClassification(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    INFO = "info"

class ExecutionConfig(BaseModel):
    """Options chosen on the console's execution form (stored, not interpreted)"""
    model: str = Field(default="gpt-4", description="Model the crew is configured for")
    processType: Literal["sequential", "hierarchical", "parallel"] = "sequential"
    maxIterations: int = Field(default=10, ge=1, le=20)
    verboseLogging: bool = True
    memoryEnabled: bool = True
    agentCollaboration: bool = True

class ExecutionCreate(BaseModel):
    """Request body for POST /api/executions"""
    crewId: Optional[str] = None
    description: Optional[str] = Field(default=None, description="Project description for the crew")
    config: ExecutionConfig = Field(default_factory=ExecutionConfig)

class ExecutionMetrics(BaseModel):
    tokensUsed: int = 0
    apiCalls: int = 0
    estimatedCost: float = 0.0
    duration: int = Field(default=0, description="Simulated seconds elapsed")

class ExecutionRecord(BaseModel):
    """Mutable state of one execution, owned by the record store"""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    crewId: Optional[str] = None
    description: Optional[str] = None
    config: ExecutionConfig = Field(default_factory=ExecutionConfig)
    status: ExecutionStatus = ExecutionStatus.RUNNING
    output: str = ""
    tokensUsed: int = 0
    apiCalls: int = 0
    estimatedCost: float = 0.0
    duration: int = 0
    startedAt: datetime = Field(default_factory=utcnow)
    completedAt: Optional[datetime] = None

class ExecutionUpdateEvent(BaseModel):
    type: Literal["execution_update"] = "execution_update"
    executionId: str
    step: str
    timestamp: str
    progress: int = Field(ge=0, le=100, description="Progress percentage (0-100)")
    metrics: ExecutionMetrics

class ExecutionCompletedEvent(BaseModel):
    type: Literal["execution_completed"] = "execution_completed"
    executionId: str
    message: str

class ExecutionStoppedEvent(BaseModel):
    type: Literal["execution_stopped"] = "execution_stopped"
    executionId: str
    message: str

class ObserverLogEntry(BaseModel):
    """One line of an observer's local activity log"""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: str
    message: str
    classification: LogClassification = LogClassification.INFO
    executionId: Optional[str] = None

class HealthResponse(BaseModel):
    status: str
    active_executions: List[str]
    subscribers: int
