"""
Cell formatting for grid columns
"""

import re
from datetime import datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo

from barpanel.models import BookingStatus

DATETIME_FORMAT = "%d.%m.%Y, %H:%M"

STATUS_LABELS = {
    BookingStatus.ACTIVE.value: "Активно",
    BookingStatus.COMPLETED.value: "Завершено",
    BookingStatus.CANCELED.value: "Отменен",
    BookingStatus.CONFIRMED.value: "Подтверждено",
    BookingStatus.PENDING.value: "В ожидании",
}
PENDING_LABEL = STATUS_LABELS[BookingStatus.PENDING.value]

# Characters dropped from the dialable part of a tel: link
PHONE_NOISE = re.compile(r"[\s()-]")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp (or pass a datetime through); naive values are UTC"""
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: Any, tz_name: str) -> str:
    """Render a timestamp as DD.MM.YYYY, HH:MM in the given zone.

    Empty values render blank and unparsable ones are shown as received.
    """
    if not value:
        return ""
    parsed = parse_timestamp(value)
    if parsed is None:
        return str(value)
    return parsed.astimezone(ZoneInfo(tz_name)).strftime(DATETIME_FORMAT)


def format_status(value: Optional[str]) -> str:
    """Localized booking status; anything outside the vocabulary is pending"""
    return STATUS_LABELS.get(value or "", PENDING_LABEL)


def format_phone(value: Optional[str]) -> str:
    return value if value else "-"


def phone_href(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return f"tel:{PHONE_NOISE.sub('', value)}"
