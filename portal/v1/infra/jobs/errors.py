class JobError(Exception):
    """Base class for job queue errors."""


class PermanentJobError(JobError):
    """
    Raised by a handler when retrying cannot help.

    The job is dead-lettered immediately instead of consuming its retry budget.
    """


class UnknownJobTypeError(JobError):
    """No handler is registered for the job type."""

    def __init__(self, job_type: str):
        self.job_type = job_type
        super().__init__(f"No handler registered for job type: {job_type}")


class InvalidJobPayloadError(JobError):
    """The payload does not match the shape declared for its job type."""

    def __init__(self, job_type: str, errors: list[dict] | None = None):
        self.job_type = job_type
        self.errors = errors or []
        super().__init__(f"Invalid payload for job type: {job_type}")
