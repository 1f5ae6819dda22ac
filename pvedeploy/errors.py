"""Project-specific exception types."""

from __future__ import annotations


class PVEDeployError(RuntimeError):
    """Base error for domain-level pvedeploy failures."""


class ValidationError(PVEDeployError):
    """Raised when deploy inputs are malformed or inconsistent."""

    def __init__(self, problems: list[str] | str):
        if isinstance(problems, str):
            problems = [problems]
        self.problems = list(problems)
        super().__init__('; '.join(self.problems))


class NameConflictError(PVEDeployError):
    """Raised when a VM/CT with the requested name already exists."""


class ProvisionError(PVEDeployError):
    """Raised when a provisioning step cannot complete."""
