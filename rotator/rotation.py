"""
Rotation engine.

Decides which secrets are due, generates replacement values and runs the
rotation sequence against a ``SecretStore`` and an optional ``Target``:

    read -> generate -> write -> update target -> verify target -> stamp metadata

The sequence is not transactional. A failure after the write leaves the store
holding a value the target may not know about, and no rotation stamp; the
raised ``RotationError`` names the step so the operator can reconcile.
"""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Mapping, Optional

from rotator.exceptions import RotationError, RotationStep, RotatorError
from rotator.logging_config import LogContext, get_logger
from rotator.models import (
    LAST_ROTATED_KEY,
    ROTATION_ENABLED_KEY,
    ROTATION_PERIOD_KEY,
    TARGET_USERNAME_KEY,
    CredentialUpdate,
    join_path,
    normalize_path,
    target_identity_from,
)
from rotator.protocols import SecretStore, Target

logger = get_logger(__name__)

ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits + "!@#$%^&*"
DAYS_PER_MONTH = 30
DEFAULT_CREDENTIAL_KEY = "secret"
CREDENTIAL_KEY_MARKERS = ("password", "secret", "key", "token")


def generate_secret(length: int) -> str:
    """Return ``length`` characters drawn uniformly from ALPHABET."""
    if length < 0:
        raise ValueError("length must not be negative")
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def _parse_timestamp(value: str) -> datetime:
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat()


def is_rotation_due(
    metadata: Optional[Mapping[str, str]],
    default_period_months: int,
    now: Optional[datetime] = None,
) -> bool:
    """Decide whether a secret with this metadata should be rotated now.

    Rotation must be enabled explicitly. A missing or unreadable
    ``last_rotated`` means due; a per-secret ``rotation_period_months`` that
    is not an integer falls back to the default period. A month is 30 days.
    """
    if not metadata or metadata.get(ROTATION_ENABLED_KEY) != "true":
        return False

    last_rotated_raw = metadata.get(LAST_ROTATED_KEY)
    if not last_rotated_raw:
        return True
    try:
        last_rotated = _parse_timestamp(last_rotated_raw)
    except ValueError:
        logger.warning("Unparsable last_rotated timestamp, treating as due", raw=last_rotated_raw)
        return True

    period = default_period_months
    override = metadata.get(ROTATION_PERIOD_KEY)
    if override is not None:
        try:
            period = int(override)
        except ValueError:
            logger.debug("Ignoring non-integer rotation period", raw=override)

    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    try:
        deadline = last_rotated + timedelta(days=period * DAYS_PER_MONTH)
    except OverflowError:
        # Deadline lies past datetime.max
        logger.warning(
            "Rotation deadline out of range, treating as not due",
            last_rotated=last_rotated_raw,
            period_months=period,
        )
        return False
    return current >= deadline


def select_credential_key(data: Mapping[str, str]) -> str:
    """Pick the data key that holds the credential.

    First key, in mapping order, whose lowercase name contains one of
    password/secret/key/token; ``"secret"`` when none does.
    """
    for key in data:
        lowered = key.lower()
        if any(marker in lowered for marker in CREDENTIAL_KEY_MARKERS):
            return key
    return DEFAULT_CREDENTIAL_KEY


async def _propagate(target: Target, path: str, update: CredentialUpdate) -> None:
    """Push ``update`` to the target and confirm it authenticates."""
    try:
        await target.update_credential(update.identity, update.new_value)
    except RotatorError as e:
        raise RotationError(path, RotationStep.UPDATE_TARGET, e) from e
    try:
        await target.verify_credential(update.identity, update.new_value)
    except RotatorError as e:
        raise RotationError(path, RotationStep.VERIFY_TARGET, e) from e
    logger.info("Target updated and verified", target=target.target_kind(), identity=update.identity)


async def rotate_secret(
    store: SecretStore,
    path: str,
    length: int,
    target: Optional[Target] = None,
    identity: Optional[str] = None,
) -> str:
    """Rotate one secret and return the new value.

    The target is only touched when both ``target`` and ``identity`` are
    given. Every failing step aborts the rest and raises RotationError,
    except the metadata read, which falls back to an empty mapping.
    """
    path = normalize_path(path)
    with LogContext(secret_path=path, backend=store.backend_kind()):
        logger.info("Rotating secret")

        try:
            record = await store.read(path)
        except RotatorError as e:
            raise RotationError(path, RotationStep.READ, e) from e

        new_value = generate_secret(length)
        credential_key = select_credential_key(record.data)
        data = dict(record.data)
        data[credential_key] = new_value

        try:
            await store.write(path, data)
        except RotatorError as e:
            raise RotationError(path, RotationStep.WRITE, e) from e
        logger.info("Stored new value", key=credential_key)

        if target is not None and identity:
            await _propagate(target, path, CredentialUpdate(identity=identity, new_value=new_value))

        try:
            metadata = await store.read_metadata(path)
        except RotatorError as e:
            logger.warning("Could not read metadata, starting fresh", error=str(e))
            metadata = {}

        metadata[ROTATION_ENABLED_KEY] = "true"
        metadata[LAST_ROTATED_KEY] = _format_timestamp(datetime.now(timezone.utc))
        try:
            await store.update_metadata(path, metadata)
        except RotatorError as e:
            raise RotationError(path, RotationStep.UPDATE_METADATA, e) from e

        logger.info("Rotation complete")
        return new_value


async def flag_for_rotation(
    store: SecretStore,
    path: str,
    period_months: int,
    target_identity: Optional[str] = None,
) -> None:
    """Enable rotation for a secret, starting its clock now."""
    if period_months < 1:
        raise ValueError("period_months must be at least 1")
    path = normalize_path(path)
    metadata = {
        ROTATION_ENABLED_KEY: "true",
        LAST_ROTATED_KEY: _format_timestamp(datetime.now(timezone.utc)),
        ROTATION_PERIOD_KEY: str(period_months),
    }
    if target_identity:
        metadata[TARGET_USERNAME_KEY] = target_identity
    await store.update_metadata(path, metadata)
    logger.info("Flagged secret for rotation", path=path, period_months=period_months)


async def _scan(
    store: SecretStore,
    base_path: str,
    default_period: int,
) -> list[tuple[str, dict[str, str]]]:
    children = await store.list(base_path)
    due: list[tuple[str, dict[str, str]]] = []
    for child in children:
        if child.endswith("/"):
            # Folder; a secret of the same name is listed separately
            continue
        full_path = join_path(base_path, child)
        try:
            metadata = await store.read_metadata(full_path)
        except RotatorError as e:
            logger.warning("Skipping secret during scan", path=full_path, error=str(e))
            continue
        if is_rotation_due(metadata, default_period):
            due.append((full_path, metadata))
    return due


async def scan_for_rotation(
    store: SecretStore,
    base_path: str,
    default_period: int,
) -> list[str]:
    """Return the paths directly under ``base_path`` that are due.

    Folder entries are skipped. Listing failures propagate; a child whose
    metadata cannot be read is logged and skipped.
    """
    due = await _scan(store, base_path, default_period)
    logger.info("Scan finished", base_path=base_path or "/", due=len(due))
    return [path for path, _ in due]


@dataclass
class RotationOutcome:
    """Result of one secret in a bulk rotation run."""

    path: str
    identity: Optional[str] = None
    new_value: Optional[str] = field(default=None, repr=False)
    error: Optional[RotatorError] = None
    dry_run: bool = False

    @property
    def succeeded(self) -> bool:
        return self.error is None and not self.dry_run


async def rotate_due_secrets(
    store: SecretStore,
    base_path: str,
    default_period: int,
    length: int,
    target: Optional[Target] = None,
    dry_run: bool = False,
) -> list[RotationOutcome]:
    """Scan ``base_path`` and rotate every due secret, one at a time.

    The target identity comes from each secret's ``target_username`` (or
    legacy ``database_username``) metadata; secrets without one are rotated
    in the store only. A failure is recorded on its outcome and the loop
    continues.
    """
    outcomes: list[RotationOutcome] = []
    for path, metadata in await _scan(store, base_path, default_period):
        identity = target_identity_from(metadata)
        if dry_run:
            logger.info("Would rotate", path=path, identity=identity)
            outcomes.append(RotationOutcome(path=path, identity=identity, dry_run=True))
            continue
        if target is not None and not identity:
            logger.info("No target identity recorded, rotating store only", path=path)
        try:
            new_value = await rotate_secret(store, path, length, target=target, identity=identity)
        except RotationError as e:
            logger.error("Rotation failed", path=path, step=e.step.value, error=str(e.cause))
            outcomes.append(RotationOutcome(path=path, identity=identity, error=e))
            continue
        outcomes.append(RotationOutcome(path=path, identity=identity, new_value=new_value))
    return outcomes


__all__ = [
    "ALPHABET",
    "generate_secret",
    "is_rotation_due",
    "select_credential_key",
    "rotate_secret",
    "flag_for_rotation",
    "scan_for_rotation",
    "rotate_due_secrets",
    "RotationOutcome",
]
