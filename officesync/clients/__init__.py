"""Outbound clients: scheduling provider API and operator notifications."""
from officesync.clients.notifier import HttpNotifier, NoOpNotifier, Notifier, build_notifier
from officesync.clients.provider import ProviderClient

__all__ = [
    "Notifier",
    "NoOpNotifier",
    "HttpNotifier",
    "build_notifier",
    "ProviderClient",
]
