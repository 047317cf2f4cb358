"""Utility modules for Pet Health Alerts."""
from utils.logger import setup_logging
from utils.token_bucket import TokenBucket
from utils.http_client import HTTPClient, APIError
from utils.timeouts import call_with_timeout
