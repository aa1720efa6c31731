from enum import Enum


class RunStatus(str, Enum):
    QUEUED = "queued"
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class FailureCriteriaMode(str, Enum):
    EVERY_TURN = "every_turn"
    ON_MAX_MESSAGES = "on_max_messages"


class EvaluatorKind(str, Enum):
    ASSERTION = "assertion"
    METRIC = "metric"
