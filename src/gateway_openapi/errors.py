"""Error taxonomy for the gateway spec generator.

Configuration and discovery errors abort a run before any analysis begins.
Analysis errors are raised per service and isolated by the assembler.
"""


class GatewaySpecError(Exception):
    """Base class for every error the generator reports to the user."""


class ConfigError(GatewaySpecError):
    """Missing or invalid configuration value, or no services resolved."""


class DiscoveryError(GatewaySpecError):
    """The workspace project graph could not be obtained or parsed."""


class AnalysisError(GatewaySpecError):
    """A source module could not be analysed."""


class UnresolvedTypeError(AnalysisError):
    """A payload type references a name that is not declared anywhere."""

    def __init__(self, type_name: str, context: str = ""):
        self.type_name = type_name
        where = f" (referenced from {context})" if context else ""
        super().__init__(f"Cannot resolve type '{type_name}'{where}")


class SpecValidationError(GatewaySpecError):
    """The generated document is internally inconsistent."""
