"""
Structural validation for raw source messages and stored work-item rows.
"""

from datetime import UTC, datetime
from typing import Any

from workos.infrastructure.observability.logging import get_logger
from workos.models.domain.source_domain import RawMessage
from workos.models.domain.work_item_domain import SOURCE_TYPES
from workos.utils.dates import parse_date_string

logger = get_logger(__name__)

EMPTY_CONTENT_PLACEHOLDER = "(no content)"


def is_valid_raw_message(msg: RawMessage | None) -> bool:
    """A message needs a known source and a native id; the timestamp is optional."""
    if msg is None or not isinstance(msg, RawMessage):
        return False
    if msg.source_type not in SOURCE_TYPES:
        return False
    if not isinstance(msg.native_id, str) or not msg.native_id.strip():
        return False
    return True


def _from_epoch(value: float) -> datetime | None:
    try:
        return datetime.fromtimestamp(value, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


def _parse_epoch_millis(value: Any) -> datetime | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return _from_epoch(value / 1000)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return _from_epoch(int(value.strip()) / 1000)
    return None


def _parse_epoch_seconds(value: Any) -> datetime | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _from_epoch(float(value))
    if isinstance(value, str):
        try:
            return _from_epoch(float(value.strip()))
        except ValueError:
            return None
    return None


def parse_native_timestamp(msg: RawMessage) -> datetime | None:
    """
    Parse the message's native timestamp according to its tagged format.

    Numeric formats fall back to generic date-string parsing when the value is
    not a number; the first valid point in time wins, otherwise None.
    """
    value = msg.native_timestamp
    if value is None or value == "":
        return None

    parsed = None
    if msg.timestamp_format == "epoch_millis":
        parsed = _parse_epoch_millis(value)
    elif msg.timestamp_format == "epoch_seconds":
        parsed = _parse_epoch_seconds(value)

    if parsed is None and isinstance(value, str):
        parsed = parse_date_string(value)

    if parsed is None:
        logger.debug(
            "Unparseable native timestamp",
            source_type=msg.source_type,
            native_id=msg.native_id,
            timestamp_format=msg.timestamp_format,
        )
    return parsed


def content_for_classification(msg: RawMessage) -> str:
    """
    Build classifier input for a message; never empty.

    Automated messages often carry no body, so an empty body falls back to
    the subject and then to a placeholder rather than dropping the message.
    """
    body = (msg.body or "").strip()
    subject = (msg.subject or "").strip()

    if not body:
        body = subject or EMPTY_CONTENT_PLACEHOLDER

    if msg.source_type == "slack":
        return f"Channel: {msg.channel or subject}\nFrom: {msg.sender}\n\n{body}"

    if subject and subject != body:
        return f"{subject}\n\n{body}"
    return body


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def is_valid_stored_item(item: Any) -> bool:
    """Reject corrupt rows read back from storage instead of failing the read."""
    if item is None:
        return False
    if isinstance(item, dict):
        return _is_positive_int(item.get("id")) and _is_positive_int(item.get("user_id"))
    return _is_positive_int(getattr(item, "id", None)) and _is_positive_int(
        getattr(item, "user_id", None)
    )
