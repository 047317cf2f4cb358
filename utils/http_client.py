"""HTTP client with retries and throttling for the detector and push gateway."""
import time
import logging
import requests

logger = logging.getLogger("petalerts.http")


class APIError(Exception):
    """Non-success HTTP response. `source` is the base URL of the service that sent it."""
    def __init__(self, message, status_code=None, response_body=None, source=None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body
        self.source = source


class _Retryable(Exception):
    def __init__(self, error, delay):
        super().__init__(str(error))
        self.error = error
        self.delay = delay


class HTTPClient:
    """JSON-over-HTTP client. Retries 429/5xx and transport errors with capped exponential backoff."""

    RETRYABLE_STATUS = {429, 500, 502, 503, 504}

    def __init__(self, base_url, throttle=None, timeout=30, max_retries=3,
                 backoff_cap=60, headers=None):
        self.base_url = base_url.rstrip("/")
        self.throttle = throttle
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_cap = backoff_cap
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": "PetAlerts/1.0"})
        if headers:
            self.session.headers.update(headers)

    def get(self, path="", params=None):
        return self._request("GET", path, params=params)

    def post(self, path="", json=None):
        return self._request("POST", path, json=json)

    def _url(self, path):
        return f"{self.base_url}/{path.lstrip('/')}" if path else self.base_url

    def _backoff(self, attempt):
        return min(2 ** attempt * 2, self.backoff_cap)

    def _request(self, method, path, **kwargs):
        url = self._url(path)
        last_error = None
        for attempt in range(self.max_retries + 1):
            if self.throttle:
                self.throttle.wait()
            try:
                return self._attempt(method, url, attempt, **kwargs)
            except _Retryable as r:
                last_error = r.error
                logger.warning(f"{method} {url} failed: {r.error} (attempt {attempt + 1}/{self.max_retries + 1})")
                if attempt < self.max_retries:
                    time.sleep(r.delay)
        raise last_error or APIError(f"Max retries exceeded for {url}", source=self.base_url)

    def _attempt(self, method, url, attempt, **kwargs):
        """One round trip. Returns the decoded body, raises APIError or _Retryable."""
        start = time.time()
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise _Retryable(e, self._backoff(attempt))
        logger.debug(f"{method} {url} → {resp.status_code} ({int((time.time() - start) * 1000)}ms)")

        status = resp.status_code
        if 200 <= status < 300:
            try:
                return resp.json()
            except ValueError:
                return resp.text

        error = APIError(f"HTTP {status} from {url}", status_code=status,
                         response_body=resp.text, source=self.base_url)
        if status in self.RETRYABLE_STATUS:
            retry_after = resp.headers.get("Retry-After")
            raise _Retryable(error, float(retry_after) if retry_after else self._backoff(attempt))
        raise error
