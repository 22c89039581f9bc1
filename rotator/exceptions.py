"""
Custom exception types for the secret rotator.

This module defines the hierarchy of exceptions raised by secret stores,
targets and the rotation engine. Using specific exception types enables:
- Precise handling at the CLI boundary (one handler for RotatorError)
- Per-secret isolation during scans (catch store errors, keep going)
- Error messages that say which backend, path or rotation step failed
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class RotatorError(Exception):
    """Base exception for all rotator errors.

    All custom exceptions should inherit from this class so callers can
    catch every rotator-specific failure with a single handler.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


# ============================================================================
# Secret Store Errors
# ============================================================================


class SecretNotFoundError(RotatorError):
    """Raised when a secret path does not exist in the store."""

    def __init__(self, backend: str, path: str):
        super().__init__(f"Secret not found in {backend}: {path}", {"backend": backend, "path": path})
        self.backend = backend
        self.path = path


class BackendUnavailableError(RotatorError):
    """Raised when a store or target cannot be reached or rejects the request.

    Covers transport failures, authentication failures and non-success
    HTTP responses.
    """

    def __init__(self, service: str, reason: str, status_code: int | None = None):
        super().__init__(
            f"Service '{service}' failed: {reason}",
            {"service": service, "reason": reason, "status_code": status_code},
        )
        self.service = service
        self.reason = reason
        self.status_code = status_code


class MalformedPayloadError(RotatorError):
    """Raised when a stored payload cannot be parsed into a string mapping."""

    def __init__(self, source: str, reason: str, raw_text: str | None = None):
        # Only the shape is reported, never the payload itself
        preview = ""
        if raw_text:
            preview = f"<{len(raw_text)} chars>"
        super().__init__(
            f"Malformed payload from {source}: {reason}",
            {"source": source, "reason": reason, "preview": preview},
        )
        self.source = source
        self.reason = reason
        self.raw_text = raw_text


class InvalidSecretPathError(RotatorError):
    """Raised when a secret path cannot be mapped safely onto a backend."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Invalid secret path '{path}': {reason}", {"path": path, "reason": reason})
        self.path = path
        self.reason = reason


# ============================================================================
# Configuration Errors
# ============================================================================


class ConfigurationError(RotatorError):
    """Raised when required backend or target settings are missing or invalid."""

    def __init__(self, component: str, reason: str):
        super().__init__(
            f"Configuration error in {component}: {reason}",
            {"component": component, "reason": reason},
        )
        self.component = component
        self.reason = reason


# ============================================================================
# Target Errors
# ============================================================================


class TargetError(RotatorError):
    """Base exception for downstream target failures."""

    pass


class CredentialUpdateError(TargetError):
    """Raised when a target refuses to change the credential."""

    def __init__(self, target: str, identity: str, reason: str):
        super().__init__(
            f"Failed to update {target} credential for '{identity}': {reason}",
            {"target": target, "identity": identity, "reason": reason},
        )
        self.target = target
        self.identity = identity
        self.reason = reason


class VerificationFailedError(TargetError):
    """Raised when a target accepted an update but the new credential does not work."""

    def __init__(self, target: str, identity: str, reason: str):
        super().__init__(
            f"Verification of new {target} credential for '{identity}' failed: {reason}",
            {"target": target, "identity": identity, "reason": reason},
        )
        self.target = target
        self.identity = identity
        self.reason = reason


# ============================================================================
# Rotation Errors
# ============================================================================


class RotationStep(str, Enum):
    """Ordered steps of a single rotation."""

    READ = "read_secret"
    WRITE = "write_secret"
    UPDATE_TARGET = "update_target"
    VERIFY_TARGET = "verify_target"
    UPDATE_METADATA = "update_metadata"


class RotationError(RotatorError):
    """Raised when a rotation aborts; names the step that failed.

    Steps after WRITE leave the store holding the new value without a
    rotation stamp. Callers should report this rather than retry blindly.
    """

    def __init__(self, path: str, step: RotationStep, cause: Exception):
        super().__init__(
            f"Rotation of '{path}' failed at step '{step.value}': {cause}",
            {"path": path, "step": step.value},
        )
        self.path = path
        self.step = step
        self.cause = cause

    @property
    def store_updated(self) -> bool:
        """Whether the store already holds the new secret value."""
        return self.step not in (RotationStep.READ, RotationStep.WRITE)


__all__ = [
    "RotatorError",
    "SecretNotFoundError",
    "BackendUnavailableError",
    "MalformedPayloadError",
    "InvalidSecretPathError",
    "ConfigurationError",
    "TargetError",
    "CredentialUpdateError",
    "VerificationFailedError",
    "RotationStep",
    "RotationError",
]
