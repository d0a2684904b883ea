"""
Error taxonomy — discriminated failures for registry and lifecycle operations.

Every error carries a human-readable message that names the affected
extension or instance, plus a ``remediation`` hint the CLI prints
underneath it.

Batch operations (activate-all, phase runs) catch these per item and
aggregate them; single operations let them propagate to the CLI.
"""

from __future__ import annotations


class SindriError(Exception):
    """Base class for all expected, user-facing failures."""

    remediation: str = ""

    def __init__(self, message: str, remediation: str | None = None):
        super().__init__(message)
        if remediation is not None:
            self.remediation = remediation

    @property
    def kind(self) -> str:
        """Short discriminator used in JSON output (e.g. 'NotFound')."""
        return self.__class__.__name__

    def to_dict(self) -> dict:
        result = {"error": str(self), "kind": self.kind}
        if self.remediation:
            result["remediation"] = self.remediation
        return result


# ── Extension registry ──────────────────────────────────────────────


class NotFound(SindriError):
    """No extension (or backup archive) matches the requested name."""

    remediation = "Run 'sindri extension list' to see available names."


class AlreadyActive(SindriError):
    """Activation requested for an extension that is already active."""

    remediation = "Nothing to do. Deactivate it first to re-copy the template."


class NotActive(SindriError):
    """Deactivation requested for an extension that is not active."""

    remediation = "Nothing to do. Run 'sindri extension list' to check status."


class ProtectedExtension(SindriError):
    """Deactivation requested for a protected core extension."""

    remediation = "Protected extensions are core system components and stay active."


class NotConfirmed(SindriError):
    """The operator declined (or was not asked for) a required confirmation."""

    remediation = "Re-run with --yes (or --force) to skip the prompt."


class DirectoryNotFound(SindriError):
    """The extensions directory does not exist."""

    remediation = "Set extensions.directory in sindri.yml or SINDRI_EXTENSIONS_DIR."


class TemplateMissing(SindriError):
    """An active extension has no ``.sh.example`` template to copy from."""

    remediation = "Restore the .sh.example template from the image or repository."


# ── Lifecycle ───────────────────────────────────────────────────────


class Timeout(SindriError):
    """A readiness poll ran out of time. Retryable by re-invocation."""


class ResumeTimedOut(Timeout):
    """The instance did not become started/reachable within the budget."""

    remediation = "Re-run 'sindri lifecycle resume' (optionally with a larger --timeout)."


class RemoteCallFailed(SindriError):
    """A provider API or remote shell call failed."""

    remediation = "Check that the app exists and you are authenticated: flyctl auth login"


class SuspendFailed(SindriError):
    """The provider rejected the stop command. Instance presumed started."""

    remediation = "Check 'sindri lifecycle status' and retry the suspend."


class PartialBackupFailure(SindriError):
    """Some pre-suspend backup step failed. Downgraded to a warning."""


class LockHeld(SindriError):
    """Another live invocation holds the advisory lock."""

    remediation = "Wait for the other sindri process to finish, then retry."
