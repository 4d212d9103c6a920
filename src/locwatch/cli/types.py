"""Result and context objects passed between locwatch CLI commands."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class CommandResult:
    """Outcome of one command; a falsy result makes the CLI exit non-zero."""

    success: bool
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    exit_code: int = 0
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self) -> None:
        if not self.success and self.exit_code == 0:
            self.exit_code = 1

    def __bool__(self) -> bool:
        return self.success


@dataclass
class CLIContext:
    verbose: bool = False
    debug: bool = False
    start_time: datetime = field(default_factory=datetime.utcnow)

    @property
    def elapsed_seconds(self) -> float:
        return (datetime.utcnow() - self.start_time).total_seconds()
