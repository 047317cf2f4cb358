"""Outbound notification transports."""
from notifications.email_sender import EmailSender
from notifications.push_sender import PushSender
