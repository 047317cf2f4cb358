"""System-wide batch sweep over every (user, pet) pair with active rules."""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

from alerts.errors import BatchPairFailure
from models.alerts import BatchRunResult
from utils.timeouts import call_with_timeout

logger = logging.getLogger("petalerts.alerts.batch")


class BatchScheduler:
    """Runs AlertEngine once per (user, pet) pair, isolating per-pair failures.

    Only rules that name a pet contribute pets to the sweep. A user whose
    active rules are all user-wide is counted as checked but has no pairs.
    A pair that exceeds pair_timeout is reported as an error and cancelled;
    a dispatch already under way when the timeout fires still completes.
    """

    def __init__(self, rules, engine, max_workers=4, pair_timeout=None):
        self.rules = rules
        self.engine = engine
        self.max_workers = max(1, int(max_workers))
        self.pair_timeout = pair_timeout

    def collect_pairs(self):
        """Group active rules into {user_id: set(pet_id)}."""
        user_pets = {}
        for rule in self.rules.find_all_active_rules():
            pets = user_pets.setdefault(rule.user_id, set())
            if rule.pet_id:
                pets.add(rule.pet_id)
        return user_pets

    def _check_pair(self, user_id, pet_id):
        cancel = threading.Event()
        try:
            return call_with_timeout(self.engine.check_and_trigger_alerts,
                                     self.pair_timeout, pet_id, user_id, cancel=cancel)
        except TimeoutError:
            # the abandoned worker stops before its next (anomaly, rule) pair
            cancel.set()
            raise

    def batch_check_alerts(self):
        result = BatchRunResult()
        logger.info("Starting batch alert sweep")

        try:
            user_pets = self.collect_pairs()
        except Exception as e:
            msg = f"Failed to load active rules: {e}"
            logger.error(msg)
            result.errors.append(msg)
            result.finished_at = datetime.now(timezone.utc)
            return result

        result.total_users_checked = len(user_pets)
        pairs = [(u, p) for u in sorted(user_pets) for p in sorted(user_pets[u])]

        with ThreadPoolExecutor(max_workers=self.max_workers,
                                thread_name_prefix="alert-sweep") as pool:
            futures = [(pair, pool.submit(self._check_pair, *pair)) for pair in pairs]
            for (user_id, pet_id), future in futures:
                try:
                    triggered = future.result()
                    result.total_alerts_triggered += len(triggered)
                except Exception as e:
                    failure = BatchPairFailure(
                        f"Alert check failed for user {user_id}, pet {pet_id}: {e}",
                        user_id=user_id, pet_id=pet_id,
                    )
                    logger.error(str(failure))
                    result.errors.append(str(failure))

        result.finished_at = datetime.now(timezone.utc)
        elapsed = (result.finished_at - result.started_at).total_seconds()
        logger.info(
            f"Batch sweep complete: {result.total_users_checked} users, {len(pairs)} pets, "
            f"{result.total_alerts_triggered} alerts, {len(result.errors)} errors ({elapsed:.1f}s)"
        )
        return result
