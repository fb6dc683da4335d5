import json
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from recipebook.core.options import ClientOptions, LogEmit, LogLevelName

logger = logging.getLogger(__name__)


class LogLevel(Enum):
    QUERY = "QUERY"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


class Colors:
    """ANSI color codes for console output"""
    RESET = '\033[0m'
    BOLD = '\033[1m'
    DIM = '\033[2m'

    RED = '\033[31m'
    BRIGHT_BLACK = '\033[90m'
    BRIGHT_RED = '\033[91m'
    BRIGHT_YELLOW = '\033[93m'
    BRIGHT_BLUE = '\033[94m'
    BRIGHT_CYAN = '\033[96m'
    WHITE = '\033[37m'


class RecipeBookLogger:
    """Colorized stdout logger used when a client log level is emitted to stdout"""

    def __init__(self, service_name: str = "RECIPEBOOK", enable_colors: bool = True, stream=None):
        self.service_name = service_name.upper()
        self.enable_colors = enable_colors
        self.stream = stream

        self.level_colors = {
            LogLevel.QUERY: Colors.BRIGHT_CYAN,
            LogLevel.INFO: Colors.BRIGHT_BLUE,
            LogLevel.WARN: Colors.BRIGHT_YELLOW,
            LogLevel.ERROR: Colors.BRIGHT_RED,
        }

    def _get_timestamp(self) -> str:
        """Get formatted timestamp"""
        return datetime.now().strftime("%H:%M:%S.%f")[:-3]

    def _colorize(self, text: str, color: str) -> str:
        """Apply color to text if colors are enabled"""
        if not self.enable_colors:
            return text
        return f"{color}{text}{Colors.RESET}"

    def _format_message(self, level: LogLevel, message: str, context: Optional[str] = None) -> str:
        """Format the log message with consistent structure"""
        timestamp = self._get_timestamp()
        level_color = self.level_colors.get(level, Colors.WHITE)

        # Format: [TIMESTAMP] [SERVICE/CONTEXT] [QUERY] Message
        level_text = self._colorize(f"[{level.value}]", level_color + Colors.BOLD)
        service_context = f"{self.service_name}"

        if context:
            service_context += f"/{context.upper()}"

        service_text = self._colorize(f"[{service_context}]", Colors.BRIGHT_BLACK)
        timestamp_text = self._colorize(f"[{timestamp}]", Colors.DIM)

        return f"{timestamp_text} {service_text} {level_text} {message}"

    def _log(self, level: LogLevel, message: str, context: Optional[str] = None, **kwargs):
        formatted_message = self._format_message(level, message, context)

        # Add any additional key-value pairs
        if kwargs:
            extras = []
            for key, value in kwargs.items():
                if isinstance(value, (dict, list)):
                    value_str = json.dumps(value, indent=None, separators=(',', ':'), default=str)[:100]
                    if len(str(value)) > 100:
                        value_str += "..."
                else:
                    value_str = str(value)
                extras.append(f"{key}={value_str}")

            if extras:
                extra_text = self._colorize(f" | {', '.join(extras)}", Colors.DIM)
                formatted_message += extra_text

        stream = self.stream or sys.stdout
        print(formatted_message, file=stream)
        stream.flush()

    def query(self, message: str, context: Optional[str] = None, **kwargs):
        self._log(LogLevel.QUERY, message, context, **kwargs)

    def info(self, message: str, context: Optional[str] = None, **kwargs):
        self._log(LogLevel.INFO, message, context, **kwargs)

    def warn(self, message: str, context: Optional[str] = None, **kwargs):
        self._log(LogLevel.WARN, message, context, **kwargs)

    def error(self, message: str, context: Optional[str] = None, **kwargs):
        self._log(LogLevel.ERROR, message, context, **kwargs)


@dataclass
class QueryEvent:
    query: str
    params: str
    duration_ms: float
    target: str = "recipebook.query"
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class LogEvent:
    message: str
    target: str = "recipebook"
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


EventCallback = Callable[[Any], None]


class LogEmitter:
    """
    Routes client log records to stdout, to subscribers, or nowhere.

    Which levels go where is decided once from ClientOptions.log; a level
    that is not configured is dropped without formatting.
    """

    def __init__(self, options: ClientOptions, stdout_logger: Optional[RecipeBookLogger] = None):
        self._stdout_levels = set(options.levels_for(LogEmit.STDOUT))
        self._event_levels = set(options.levels_for(LogEmit.EVENT))
        self._subscribers: Dict[LogLevelName, List[EventCallback]] = {}
        self._stdout = stdout_logger or RecipeBookLogger("RECIPEBOOK")

    def is_enabled(self, level: LogLevelName) -> bool:
        return level in self._stdout_levels or level in self._event_levels

    def subscribe(self, level: LogLevelName, callback: EventCallback) -> None:
        level = LogLevelName(level)
        if level not in self._event_levels:
            raise ValueError(f"Log level '{level.value}' is not configured with emit='event'")
        self._subscribers.setdefault(level, []).append(callback)

    def emit_query(self, statement: str, parameters: Any, duration_ms: float) -> None:
        if not self.is_enabled(LogLevelName.QUERY):
            return
        event = QueryEvent(query=statement, params=_render_params(parameters), duration_ms=round(duration_ms, 3))
        if LogLevelName.QUERY in self._stdout_levels:
            self._stdout.query(event.query, params=event.params, duration_ms=event.duration_ms)
        self._dispatch(LogLevelName.QUERY, event)

    def emit(self, level: LogLevelName, message: str, target: str = "recipebook") -> None:
        if not self.is_enabled(level):
            return
        if level in self._stdout_levels:
            getattr(self._stdout, level.value)(message, context=target.rsplit(".", 1)[-1])
        self._dispatch(level, LogEvent(message=message, target=target))

    def _dispatch(self, level: LogLevelName, event: Any) -> None:
        for callback in self._subscribers.get(level, []):
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"Log subscriber for '{level.value}' raised: {e}")


def _render_params(parameters: Any) -> str:
    try:
        return json.dumps(parameters, default=str)
    except (TypeError, ValueError):
        return str(parameters)
