"""Runtime context shared by every layer above the DAL.

A :class:`RuntimeContext` bundles the parsed settings, the live workbook, the
lock that serializes conditional writes, and the registry of subjects with an
operation in flight. It deliberately carries no cache: every read goes back to
the workbook so decisions are never taken on a stale value.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

from openpyxl.workbook import Workbook

from . import audit, configure_log_output, data_manager, log
from .constants import EXPECTED_SCHEMA_VERSION
from .exceptions import SchemaMismatchError


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration, workbook, and coordination state."""

    settings: data_manager.ConfigSettings
    workbook: Workbook
    audit_sink: Optional[Callable[[audit.AuditEvent], None]] = None
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)
    in_flight: set[str] = field(default_factory=set, repr=False, compare=False)
    registry_lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


def resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` or the current UTC time when it is ``None``.

    Naive datetimes are taken to be UTC so every stored timestamp is aware and
    they all compare with each other.
    """

    if candidate is None:
        return datetime.now(UTC)
    if candidate.tzinfo is None:
        return candidate.replace(tzinfo=UTC)
    return candidate


def generate_id(*, prefix: str, when: Optional[datetime] = None) -> str:
    """Generate a sortable identifier using UTC timestamps.

    Args:
        prefix (str): Designator prepended to the identifier (``R`` for
            reconciliation records, ``M`` for movements, and so on).
        when (datetime | None): Timestamp used for deterministically producing
            the identifier. When ``None`` the current UTC time is used.

    Returns:
        str: Identifier formed as ``{prefix}{YYYYMMDDHHMMSSffffff}``.
    """

    when = when or resolve_timestamp(None)
    return f"{prefix}{when.strftime('%Y%m%d%H%M%S%f')}"


def allocate_id(context: RuntimeContext, sheet_name: str, key_column: str, *, prefix: str, when: Optional[datetime] = None) -> str:
    """Generate an identifier that is not yet used in ``sheet_name``.

    Two writes sharing the same timestamp would collide on the plain
    timestamp id, so the candidate is bumped one microsecond at a time until
    it is free. Ordering by id therefore still follows creation order.
    """

    moment = resolve_timestamp(when)
    with context.lock:
        candidate = generate_id(prefix=prefix, when=moment)
        while data_manager.locate_row(context.workbook, sheet_name, {key_column: candidate}) is not None:
            moment += timedelta(microseconds=1)
            candidate = generate_id(prefix=prefix, when=moment)
    return candidate


def build_context(settings: data_manager.ConfigSettings, workbook: Workbook) -> RuntimeContext:
    """Assemble a context, wiring the workbook audit sink when enabled."""

    sink = audit.WorkbookAuditSink(workbook) if settings.audit_enabled else None
    return RuntimeContext(settings=settings, workbook=workbook, audit_sink=sink)


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and a live workbook.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.

    Returns:
        RuntimeContext: Fully populated context ready for the workflow.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options or sheets are missing.
    """

    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    configure_log_output(settings.log_dir, settings.log_level)
    workbook = data_manager.open_workbook(settings.data_file)
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return build_context(settings, workbook)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate workbook compatibility before mutating state.

    Raises:
        SchemaMismatchError: If the schema version declared in the
            configuration does not match ``EXPECTED_SCHEMA_VERSION``.
    """

    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise SchemaMismatchError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def persist_context(context: RuntimeContext) -> None:
    """Persist in-memory workbook changes to the configured data file."""

    with context.lock:
        data_manager.save_workbook(context.workbook, destination=context.settings.data_file)
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook to discard unsaved modifications.

    A new :class:`RuntimeContext` is produced with a fresh lock and an empty
    in-flight registry.

    Raises:
        FileNotFoundError: If the backing workbook cannot be reloaded.
    """

    workbook = data_manager.refresh_workbook(context.settings.data_file)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return build_context(context.settings, workbook)
