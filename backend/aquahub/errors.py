class AquaHubError(Exception):
    """Base class for errors surfaced to the web layer."""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AquaHubError):
    """Malformed threshold or reading, rejected before evaluation."""
    status_code = 422


class InvalidReading(AquaHubError):
    """Reading without a tank association."""
    status_code = 422


class InvalidTransition(AquaHubError):
    """Illegal alert lifecycle transition."""
    status_code = 409


class NotFound(AquaHubError):
    status_code = 404
