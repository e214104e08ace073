import json
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from loguru import logger
from pydantic import BaseModel, Field, field_validator

from .exceptions import ConfigError

DEFAULT_STEPS: List[str] = [
    "Initializing CrewAI execution environment...",
    "Loading configured agents and tasks...",
    "Starting market entry strategy development...",
    "Market Analyst: Beginning competitive landscape analysis...",
    "Strategy Consultant: Analyzing target market demographics...",
    "Research Agent: Collecting market size and growth data...",
    "Market Analyst: Found 47 direct competitors in the space...",
    "Strategy Consultant: Identified 3 key customer segments...",
    "Research Agent: Market size estimated at $2.4B with 12% CAGR...",
    "Market Analyst: Completing SWOT analysis framework...",
    "Strategy Consultant: Developing go-to-market strategies...",
    "Research Agent: Analyzing pricing models and positioning...",
    "Market Analyst: Generating competitive positioning matrix...",
    "Strategy Consultant: Creating customer acquisition funnel...",
    "Research Agent: Finalizing market entry recommendations...",
    "All agents: Collaborating on executive summary...",
    "Execution completed successfully!",
]

COMPLETED_MESSAGE = "Execution completed successfully!"
STOPPED_MESSAGE = "Execution stopped by user"

class RunnerSettings(BaseModel):
    """Step script and metric progression for simulated executions"""
    interval: float = Field(default=2.0, gt=0, description="Seconds between ticks")
    steps: List[str] = Field(default_factory=lambda: list(DEFAULT_STEPS))
    base_tokens: int = 8247
    tokens_per_step: int = 234
    base_api_calls: int = 23
    api_calls_per_step: int = 2
    base_cost: float = 1.47
    cost_per_step: float = 0.08
    seconds_per_step: int = 8
    completed_message: str = COMPLETED_MESSAGE
    stopped_message: str = STOPPED_MESSAGE

    @field_validator("steps")
    @classmethod
    def _steps_not_empty(cls, steps: List[str]) -> List[str]:
        if not steps:
            raise ValueError("step script must contain at least one step")
        return steps

class Settings(BaseModel):
    """Process-wide settings, read from the environment"""
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    queue_size: int = Field(default=100, gt=0, description="Per-subscriber event queue bound")
    runner: RunnerSettings = Field(default_factory=RunnerSettings)

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()

        runner_kwargs = {}
        interval = os.getenv("CREWDECK_TICK_INTERVAL")
        if interval:
            runner_kwargs["interval"] = _parse_number(interval, float, "CREWDECK_TICK_INTERVAL")
        script_file = os.getenv("CREWDECK_SCRIPT_FILE")
        if script_file:
            runner_kwargs["steps"] = load_step_script(script_file)

        try:
            return cls(
                host=os.getenv("CREWDECK_HOST", "0.0.0.0"),
                port=_parse_number(os.getenv("CREWDECK_PORT", "8000"), int, "CREWDECK_PORT"),
                log_level=os.getenv("CREWDECK_LOG_LEVEL", "INFO").upper(),
                queue_size=_parse_number(os.getenv("CREWDECK_QUEUE_SIZE", "100"), int, "CREWDECK_QUEUE_SIZE"),
                runner=RunnerSettings(**runner_kwargs),
            )
        except ValueError as e:
            raise ConfigError(f"Invalid settings: {e}") from e

def _parse_number(raw: str, kind, name: str):
    try:
        return kind(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a {kind.__name__}, got {raw!r}") from e

def load_step_script(path: str) -> List[str]:
    """Load a step script from a JSON file.

    The file holds either a list of step strings or an object with a
    ``steps`` list.
    """
    script_path = Path(path)
    try:
        with open(script_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read step script {script_path}: {e}") from e

    steps: Optional[list] = data.get("steps") if isinstance(data, dict) else data
    if not isinstance(steps, list) or not steps or not all(isinstance(s, str) for s in steps):
        raise ConfigError(f"Step script {script_path} must be a non-empty list of strings")

    logger.info(f"Loaded {len(steps)} execution steps from {script_path}")
    return steps
