class ConvoProbeError(Exception):
    """Base exception for ConvoProbe."""

    retryable: bool = False

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotFoundError(ConvoProbeError):
    def __init__(self, resource: str, resource_id: str) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(message=f"{resource} with id '{resource_id}' not found")


class ValidationError(ConvoProbeError):
    pass


class ConnectorError(ConvoProbeError):
    """Transport failure or non-2xx response from the agent under test."""

    retryable = True

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message=message)


class LLMCapabilityError(ConvoProbeError):
    """Persona or judge LLM call failed. Carries the provider message verbatim."""

    retryable = True


class InvalidTranscriptError(ConvoProbeError):
    """A message broke the tool-call pairing rules of the transcript."""

    retryable = True


class RetryNotAllowedError(ConvoProbeError):
    def __init__(self, run_id: str, status: str) -> None:
        self.run_id = run_id
        self.status = status
        super().__init__(
            message=(
                f'Cannot retry run with status "{status}". '
                "Only runs with system errors can be retried."
            ),
        )


class EvaluatorLoadError(ConvoProbeError):
    pass
