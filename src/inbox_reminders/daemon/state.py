"""JSON persistence for the daemon's dedup set, counters and watermark."""

from __future__ import annotations

import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from inbox_reminders.core.datetime_utils import EPOCH, ensure_utc
from inbox_reminders.core.models import DaemonState

LOGGER = logging.getLogger(__name__)


class PersistedState(BaseModel):
    """On-disk layout of :class:`DaemonState`."""

    model_config = ConfigDict(populate_by_name=True)

    last_processed_timestamp: datetime = Field(
        default=EPOCH, alias="lastProcessedTimestamp"
    )
    processed_message_ids: list[str] = Field(
        default_factory=list,
        alias="processedEmailIds",
        validation_alias=AliasChoices("processedEmailIds", "processedMessageIds"),
    )
    total_messages_processed: int = Field(
        default=0, ge=0, alias="totalEmailsProcessed"
    )
    total_reminders_created: int = Field(
        default=0, ge=0, alias="totalRemindersCreated"
    )
    last_error_timestamp: datetime | None = Field(
        default=None, alias="lastErrorTimestamp"
    )
    last_error_message: str | None = Field(default=None, alias="lastErrorMessage")

    @classmethod
    def from_state(cls, state: DaemonState) -> PersistedState:
        return cls(
            last_processed_timestamp=state.last_processed_timestamp,
            processed_message_ids=sorted(state.processed_message_ids),
            total_messages_processed=state.total_messages_processed,
            total_reminders_created=state.total_reminders_created,
            last_error_timestamp=state.last_error_timestamp,
            last_error_message=state.last_error_message,
        )

    def to_state(self) -> DaemonState:
        return DaemonState(
            last_processed_timestamp=ensure_utc(self.last_processed_timestamp)
            or EPOCH,
            processed_message_ids=set(self.processed_message_ids),
            total_messages_processed=self.total_messages_processed,
            total_reminders_created=self.total_reminders_created,
            last_error_timestamp=ensure_utc(self.last_error_timestamp),
            last_error_message=self.last_error_message,
        )


def serialize_state(state: DaemonState) -> str:
    """Render ``state`` as the JSON document written to disk."""
    return PersistedState.from_state(state).model_dump_json(by_alias=True, indent=2)


def deserialize_state(payload: str | bytes) -> DaemonState:
    """Parse a JSON document; raises ``ValidationError`` on bad input."""
    return PersistedState.model_validate_json(payload).to_state()


class StateStore:
    """Load and save :class:`DaemonState` at a fixed path.

    Loading never fails: a missing or unreadable file yields an empty state.
    Saving is best effort and logs instead of raising.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    def load(self) -> DaemonState:
        try:
            payload = self._path.read_bytes()
        except FileNotFoundError:
            LOGGER.info("No previous state found at %s, starting fresh", self._path)
            return DaemonState()
        except OSError as exc:
            LOGGER.warning("Failed to read daemon state %s: %s", self._path, exc)
            return DaemonState()

        try:
            state = deserialize_state(payload)
        except (ValidationError, UnicodeDecodeError) as exc:
            LOGGER.warning(
                "Daemon state %s is corrupt, starting fresh: %s", self._path, exc
            )
            return DaemonState()

        LOGGER.info(
            "Daemon state loaded: watermark=%s processed_ids=%d emails=%d reminders=%d",
            state.last_processed_timestamp.isoformat(),
            len(state.processed_message_ids),
            state.total_messages_processed,
            state.total_reminders_created,
        )
        return state

    def save(self, state: DaemonState) -> bool:
        """Write ``state`` atomically; return ``False`` if the write failed."""
        payload = serialize_state(state)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            # Write beside the target so the rename stays on one filesystem.
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            LOGGER.error("Failed to save daemon state to %s: %s", self._path, exc)
            return False
        LOGGER.debug("Daemon state saved to %s", self._path)
        return True


__all__ = ["PersistedState", "StateStore", "deserialize_state", "serialize_state"]
