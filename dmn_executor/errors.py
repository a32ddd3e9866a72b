"""
Fatal error taxonomy for the execution pipeline.

Every error here short-circuits the current command. The CLI turns it into a single
failure document ({"success": false, "errors": [...]}) and exit code 1.
Per-decision evaluation failures are not exceptions; they travel inside EvaluationResult.
"""

from typing import Optional


class ExecutorError(Exception):
    """Base class for pipeline errors reported as a failure payload."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def errors(self) -> list[str]:
        """Strings placed in the failure payload's ``errors`` list."""
        return [self.message]


class ArgumentError(ExecutorError):
    """Bad command-line usage (unknown command, missing value, missing service name)."""


class ResourceNotFound(ExecutorError):
    """The main DMN file does not exist."""

    def __init__(self, path: str):
        super().__init__(f"DMN file not found: {path}")
        self.path = path


class InputParseError(ExecutorError):
    """The input document is not a JSON object."""


class CompilationFailed(ExecutorError):
    """The engine could not build a runtime from the resources at all."""

    def __init__(self, detail: str):
        super().__init__(f"Failed to build DMN runtime: {detail}")
        self.detail = detail


class ModelNotFound(ExecutorError):
    """No model could be selected from the loaded collection."""

    def __init__(self, model_name: Optional[str] = None, loaded: Optional[list[str]] = None):
        if model_name:
            message = f"Could not find DMN model '{model_name}'. Loaded: {loaded or []}"
        elif loaded:
            message = f"Could not find main DMN model. Loaded: {loaded}"
        else:
            message = "Could not find main DMN model: no DMN models were loaded"
        super().__init__(message)
        self.model_name = model_name
        self.loaded = loaded or []


class ModelHasErrors(ExecutorError):
    """The selected model compiled with structural errors."""

    def __init__(self, model_name: str, messages: list[str]):
        super().__init__(f"DMN model '{model_name}' has errors")
        self.model_name = model_name
        self.messages = messages

    def errors(self) -> list[str]:
        return list(self.messages) or [self.message]


class DecisionNotFound(ExecutorError):
    """No decision with the requested name exists in the model."""

    def __init__(self, decision_name: str, available: list[str]):
        super().__init__(f"Decision '{decision_name}' not found. Available: {available}")
        self.decision_name = decision_name
        self.available = available


class ServiceNotFound(ExecutorError):
    """No decision service with the requested name exists in the model."""

    def __init__(self, service_name: str, available: list[str]):
        super().__init__(f"Decision service '{service_name}' not found. Available: {available}")
        self.service_name = service_name
        self.available = available
