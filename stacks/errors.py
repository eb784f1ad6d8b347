"""Errors raised while composing the htsget deployment.

Every ``ConfigurationError`` is fatal for the stage being composed: nothing
is provisioned for that stage and later stages are never reached.
"""


class ConfigurationError(Exception):
    """A stage cannot be composed from the configuration available."""


class MissingStageConfig(ConfigurationError):
    def __init__(self, name: str):
        super().__init__(f"No configuration for stage '{name}'")
        self.name = name


class ParameterNotFound(ConfigurationError):
    def __init__(self, name: str):
        super().__init__(f"SSM parameter '{name}' does not exist")
        self.name = name


class InvalidBucketName(ConfigurationError):
    def __init__(self, bucket: str):
        super().__init__(f"Invalid S3 bucket name: {bucket!r}")
        self.bucket = bucket


class OrderingViolation(RuntimeError):
    """The retrieval service was configured before its authorizer was linked."""
