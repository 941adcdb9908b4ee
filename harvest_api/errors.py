"""Error taxonomy shared by the registry, runner, result store and API."""


class HarvestError(Exception):
    """Base class for all domain errors raised by the service."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ValidationError(HarvestError):
    """Malformed or incomplete input, rejected before any state changes."""

    status_code = 400


class InvalidFilename(ValidationError):
    """Artifact name is not a bare file name."""


class NotFound(HarvestError):
    status_code = 404


class JobNotFound(NotFound):
    def __init__(self, job_id: str):
        super().__init__("Job not found")
        self.job_id = job_id


class FileNotFound(NotFound):
    def __init__(self, filename: str):
        super().__init__("File not found")
        self.filename = filename


class InvalidTransition(HarvestError):
    """A status update that would break pending -> running -> terminal."""

    status_code = 409


class ExternalFailure(HarvestError):
    """The external crawl operation reported an error."""


class IOFailure(HarvestError):
    """Reading, decoding or deleting an artifact failed."""
