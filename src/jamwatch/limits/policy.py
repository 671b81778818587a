"""Static thresholds for every guarded action."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum

from jamwatch.domain import Direction, IncidentType, Street


class ActionKind(str, Enum):
    REPORT_SUBMIT = "report-submit"
    INCIDENT_SUBMIT = "incident-submit"
    INCIDENT_SUBMIT_GLOBAL = "incident-submit-global"
    DATA_PROXY_CALL = "data-proxy-call"
    NOTIFICATION_TRIGGER = "notification-trigger"
    PAYMENT_SESSION = "payment-session"
    PAGE_VISIT = "page-visit"
    CHAT_MESSAGE = "chat-message"


@dataclass(frozen=True)
class LimitPolicy:
    threshold: int
    window: timedelta
    message: str


POLICIES: dict[ActionKind, LimitPolicy] = {
    ActionKind.REPORT_SUBMIT: LimitPolicy(1, timedelta(minutes=5), "Maks 1 zgłoszenie na 5 minut"),
    ActionKind.INCIDENT_SUBMIT: LimitPolicy(1, timedelta(minutes=5), "Maks 1 zgłoszenie na 5 minut"),
    ActionKind.INCIDENT_SUBMIT_GLOBAL: LimitPolicy(2, timedelta(minutes=5), "Maks 2 zgłoszenia w ciągu 5 minut"),
    ActionKind.DATA_PROXY_CALL: LimitPolicy(
        10, timedelta(minutes=1), "Zbyt wiele zapytań z tego adresu IP. Spróbuj ponownie za chwilę."
    ),
    ActionKind.NOTIFICATION_TRIGGER: LimitPolicy(
        5, timedelta(minutes=1), "Zbyt wiele żądań powiadomień. Spróbuj ponownie za chwilę."
    ),
    ActionKind.PAYMENT_SESSION: LimitPolicy(
        3, timedelta(hours=1), "Zbyt wiele prób płatności. Spróbuj ponownie za godzinę."
    ),
    ActionKind.PAGE_VISIT: LimitPolicy(1, timedelta(hours=1), "Wizyta już zarejestrowana"),
    ActionKind.CHAT_MESSAGE: LimitPolicy(
        10, timedelta(hours=1), "Limit przekroczony. Możesz wysłać maksymalnie 10 wiadomości na godzinę."
    ),
}


def report_identifier(fingerprint: str, street: Street, direction: Direction) -> str:
    return f"{fingerprint}_{street.value}_{direction.value}"


def incident_identifier(fingerprint: str, street: Street, incident_type: IncidentType) -> str:
    return f"{fingerprint}_{street.value}_{incident_type.value}"


def ip_identifier(client_ip: str) -> str:
    return f"ip_{client_ip}"
