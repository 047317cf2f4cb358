"""Exception taxonomy for the alert subsystem."""


class AlertError(Exception):
    """Base class for alert subsystem errors."""


class ValidationError(AlertError):
    """Malformed alert rule configuration."""
    def __init__(self, message, field=None):
        super().__init__(message)
        self.field = field


class DetectionUnavailable(AlertError):
    """The anomaly detector could not produce results for a pet."""
    def __init__(self, message, pet_id=None, status_code=None):
        super().__init__(message)
        self.pet_id = pet_id
        self.status_code = status_code


class ChannelDeliveryFailed(AlertError):
    """A single notification channel failed to deliver."""
    def __init__(self, message, channel=None):
        super().__init__(message)
        self.channel = channel


class ChannelTimeout(ChannelDeliveryFailed):
    """A channel send did not complete within its time budget."""


class AlertCheckFailed(AlertError):
    """Loading rules or anomalies failed for one checkAndTriggerAlerts call."""
    def __init__(self, message, pet_id=None, user_id=None):
        super().__init__(message)
        self.pet_id = pet_id
        self.user_id = user_id


class BatchPairFailure(AlertError):
    """Processing one (user, pet) pair failed during a batch sweep."""
    def __init__(self, message, user_id=None, pet_id=None):
        super().__init__(message)
        self.user_id = user_id
        self.pet_id = pet_id
