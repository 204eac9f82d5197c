"""
Error types raised by the analyze/generate pipeline.
"""


class PipelineError(Exception):
    """Base class for every error the pipeline surfaces to callers."""


class ConfigurationError(PipelineError):
    """Provider missing, bad retry count, bad byte cap, missing credentials."""


class FetchError(PipelineError):
    """A referenced document could not be read."""


class ProviderError(PipelineError):
    """The completion service failed or returned nothing usable."""


class CancelledError(PipelineError):
    """The caller cancelled the call or its deadline passed."""


class SchemaValidationError(PipelineError):
    """Raw model output did not parse or did not match the artifact schema."""

    def __init__(self, kind, message, details=None, parse_error=False):
        super().__init__(message)
        self.kind = kind
        self.details = list(details or [])
        self.parse_error = parse_error


class SemanticRuleError(PipelineError):
    """A schema-valid workout broke one or more plan rules."""

    def __init__(self, violations, workout=None):
        self.violations = list(violations)
        self.workout = workout
        lines = [f"{v['code']}: {v['message']}" for v in self.violations]
        super().__init__("semantic rules failed: " + "; ".join(lines))


class RetriesExhaustedError(PipelineError):
    """Every attempt of a phase failed; carries all errors seen along the way."""

    def __init__(self, phase, errors):
        self.phase = phase
        self.errors = list(errors)
        joined = "\n".join(f"- {error}" for error in self.errors)
        super().__init__(
            f"{phase} failed after {len(self.errors)} attempt(s):\n{joined}"
        )
