"""Error taxonomy for the policy engine.

- InputValidationError: malformed or missing operation parameters (fatal)
- ToolInvocationError: a subprocess failed to start, timed out or overflowed
- ParseError: tool output did not match the expected grammar
- UpstreamApiError: the LLM call failed or returned something unusable
- PerFileError: failure isolated to one file of a batch
- RuleLoadError: a rule module could not be loaded or broke the contract

A policy violation is not an error; it is a ``Violation`` record.
"""


class GuardrailsError(Exception):
    """Base class for all policy engine errors."""


class InputValidationError(GuardrailsError):
    """Operation input failed validation. Raised before any I/O."""


class ToolInvocationError(GuardrailsError):
    """An external tool could not be run to completion."""

    def __init__(self, message: str, command: str = ""):
        super().__init__(message)
        self.command = command


class ParseError(GuardrailsError):
    """Tool output did not match the expected format."""

    def __init__(self, message: str, tool: str = "", output: str = ""):
        super().__init__(message)
        self.tool = tool
        self.output = output


class UpstreamApiError(GuardrailsError):
    """The chat model call failed or returned a malformed response."""


class PerFileError(GuardrailsError):
    """A failure confined to a single file in a batch."""

    def __init__(self, message: str, file_path: str = ""):
        super().__init__(message)
        self.file_path = file_path


class RuleLoadError(GuardrailsError):
    """A rule module failed to import or does not export a valid rule."""

    def __init__(self, message: str, path: str = ""):
        super().__init__(message)
        self.path = path
