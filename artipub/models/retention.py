"""Retention watermark and keep-until stamp encoding."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, ConfigDict

KEEP_UNTIL_PROPERTY = "keep-until"
DEFAULT_BUFFER = timedelta(days=5)

_STAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def format_stamp(moment: datetime) -> str:
    """Encode a keep-until stamp as ISO-8601 UTC with seconds."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime(_STAMP_FORMAT)


def parse_stamp(value: str) -> datetime:
    """Decode a keep-until stamp.

    Accepts the canonical ``Z`` form, explicit offsets, and integer epoch
    seconds.  Naive values are taken as UTC.
    """
    text = value.strip()
    if text.isdigit():
        return datetime.fromtimestamp(int(text), tz=timezone.utc)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


class RetentionWatermark(BaseModel):
    """The keep-until point computed once per session, plus the extension buffer.

    A dependency stamp strictly older than ``keep_until`` needs an update and
    is then set to ``extended`` (``keep_until + buffer``).
    """

    model_config = ConfigDict(frozen=True)

    keep_until: datetime
    buffer: timedelta = DEFAULT_BUFFER

    @classmethod
    def from_start(
        cls, start: datetime, days: int, buffer: timedelta = DEFAULT_BUFFER
    ) -> RetentionWatermark:
        return cls(keep_until=start + timedelta(days=days), buffer=buffer)

    @property
    def extended(self) -> datetime:
        return self.keep_until + self.buffer

    def needs_update(self, stamp: datetime | None) -> bool:
        """A missing stamp always needs an update; otherwise strict ``<``."""
        return stamp is None or stamp < self.keep_until
