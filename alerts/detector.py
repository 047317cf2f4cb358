"""Client for the upstream anomaly detection service."""
import logging

import requests

from alerts.errors import DetectionUnavailable
from models.alerts import AnomalyEvent
from utils.http_client import HTTPClient, APIError

logger = logging.getLogger("petalerts.alerts.detector")


class HTTPAnomalyDetector:
    """Fetches detected anomalies for a pet: GET {base_url}/pets/{pet_id}/anomalies."""

    def __init__(self, config: dict, client=None):
        detector_config = config.get("detector", {})
        self.base_url = detector_config.get("base_url", "")
        self.client = client or HTTPClient(
            self.base_url,
            timeout=detector_config.get("timeout_seconds", 30),
            max_retries=detector_config.get("max_retries", 2),
        )

    def detect_anomalies(self, pet_id):
        try:
            data = self.client.get(f"/pets/{pet_id}/anomalies")
        except APIError as e:
            raise DetectionUnavailable(f"Detector returned an error for pet {pet_id}: {e}",
                                       pet_id=pet_id, status_code=e.status_code) from e
        except requests.RequestException as e:
            raise DetectionUnavailable(f"Detector unreachable for pet {pet_id}: {e}",
                                       pet_id=pet_id) from e

        if isinstance(data, dict):
            data = data.get("anomalies", [])
        if not isinstance(data, list):
            raise DetectionUnavailable(f"Malformed detector response for pet {pet_id}",
                                       pet_id=pet_id)

        anomalies = []
        for raw in data:
            try:
                anomalies.append(AnomalyEvent.from_dict(raw, pet_id=pet_id))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Skipping malformed anomaly for pet {pet_id}: {e}")
        logger.debug(f"Detector returned {len(anomalies)} anomalies for pet {pet_id}")
        return anomalies
