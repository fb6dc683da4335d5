"""
Client construction options.

Options are validated when the client is built so that a bad log level,
error format or isolation level fails at startup instead of on first use.
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from recipebook.core.config import Settings, settings as default_settings


class ErrorFormat(str, Enum):
    PRETTY = "pretty"
    COLORLESS = "colorless"
    MINIMAL = "minimal"


class LogLevelName(str, Enum):
    QUERY = "query"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class LogEmit(str, Enum):
    STDOUT = "stdout"
    EVENT = "event"


class IsolationLevel(str, Enum):
    READ_UNCOMMITTED = "READ UNCOMMITTED"
    READ_COMMITTED = "READ COMMITTED"
    REPEATABLE_READ = "REPEATABLE READ"
    SERIALIZABLE = "SERIALIZABLE"


class LogDefinition(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: LogLevelName
    emit: LogEmit = LogEmit.STDOUT


class TransactionOptions(BaseModel):
    """Bounds applied to every transaction unless overridden per call."""
    model_config = ConfigDict(extra="forbid")

    max_wait: int = Field(2000, gt=0, description="Milliseconds to wait for a connection")
    timeout: int = Field(5000, gt=0, description="Milliseconds before the transaction is aborted")
    isolation_level: Optional[IsolationLevel] = None


class ClientOptions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    datasource_url: Optional[str] = None
    error_format: ErrorFormat = ErrorFormat.COLORLESS
    log: List[LogDefinition] = Field(default_factory=list)
    transaction_options: TransactionOptions = Field(default_factory=TransactionOptions)
    omit: Dict[str, Dict[str, bool]] = Field(default_factory=dict)

    @field_validator("log", mode="before")
    @classmethod
    def expand_log_shorthand(cls, value):
        # "query" is shorthand for {"level": "query", "emit": "stdout"}
        if value is None:
            return []
        return [{"level": item} if isinstance(item, (str, LogLevelName)) else item for item in value]

    @classmethod
    def from_settings(cls, settings: Settings = default_settings, **overrides) -> "ClientOptions":
        """Build options from environment settings, letting explicit overrides win."""
        values = {
            "error_format": settings.ERROR_FORMAT,
            "log": settings.LOG_LEVELS,
            "transaction_options": {
                "max_wait": settings.TRANSACTION_MAX_WAIT_MS,
                "timeout": settings.TRANSACTION_TIMEOUT_MS,
                "isolation_level": settings.TRANSACTION_ISOLATION_LEVEL or None,
            },
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls.model_validate(values)

    def levels_for(self, emit: LogEmit) -> List[LogLevelName]:
        return [definition.level for definition in self.log if definition.emit == emit]
