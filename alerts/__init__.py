"""Alert rule engine and notification dispatch."""
from alerts.errors import (
    AlertError, ValidationError, DetectionUnavailable, ChannelDeliveryFailed,
    ChannelTimeout, AlertCheckFailed, BatchPairFailure,
)
from alerts.matcher import RuleMatcher
from alerts.rate_limiter import RateLimiter
from alerts.channels import ChannelDispatcher
from alerts.engine import AlertEngine
from alerts.batch import BatchScheduler
from alerts.rules_manager import RulesManager
