"""Error taxonomy for ticket orchestration."""


class TicketToPRError(Exception):
    """Base class for orchestration errors."""


class ConfigurationError(TicketToPRError):
    """Raised for missing credentials or an unknown project."""


class AgentFailure(TicketToPRError):
    """Raised when an agent session ends without a usable result."""

    def __init__(self, message: str, remediation: str | None = None):
        self.remediation = remediation
        if remediation:
            message = f"{message}. {remediation}"
        super().__init__(message)


class ValidationFailure(TicketToPRError):
    """Raised when a post-run gate (build, guardrail) rejects the workspace."""

    def __init__(self, message: str, output: str = ""):
        self.output = output
        super().__init__(message)


class IntegrationFailure(TicketToPRError):
    """Raised when pushing the branch fails."""


class InfrastructureFailure(TicketToPRError):
    """Raised when the board cannot be reached during a poll."""
