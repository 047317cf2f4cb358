"""Collaborator interfaces the alert engine depends on.

models.database.Database implements all of the storage protocols; tests
substitute in-memory fakes.
"""
from typing import Protocol, runtime_checkable


@runtime_checkable
class RuleRepository(Protocol):
    def find_active_rules_for_user(self, user_id, pet_id=None) -> list: ...

    def find_all_active_rules(self) -> list: ...

    def save_rule(self, rule): ...

    def delete_rule(self, rule_id) -> bool: ...


@runtime_checkable
class NotificationRepository(Protocol):
    def create_notification(self, notification): ...


@runtime_checkable
class ContactDirectory(Protocol):
    def get_contact(self, user_id) -> dict: ...

    def get_pet_name(self, pet_id): ...


@runtime_checkable
class AnomalyDetector(Protocol):
    def detect_anomalies(self, pet_id) -> list: ...


@runtime_checkable
class EmailChannelSender(Protocol):
    def send_email(self, to, subject, body) -> bool: ...


@runtime_checkable
class PushChannelSender(Protocol):
    def send_push(self, device_tokens, payload) -> bool: ...
