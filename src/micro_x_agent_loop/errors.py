"""
Exception types shared by the agent loop, dispatcher and retry pipeline.
"""


class AgentError(Exception):
    """Base class for agent runtime errors."""


class UnknownToolError(AgentError):
    """The model requested a tool that is not in the registry."""

    def __init__(self, name: str):
        super().__init__(f'unknown tool "{name}"')
        self.name = name


class ToolExecutionError(AgentError):
    """A tool failed. Converted into an error result by the dispatcher."""


class CompactionError(AgentError):
    """Summarization failed. Compaction falls back to leaving history untouched."""


class OperationCancelledError(AgentError):
    """The operation was cancelled through a CancellationToken."""

    def __init__(self, reason: str = "cancelled"):
        super().__init__(reason)
        self.reason = reason
