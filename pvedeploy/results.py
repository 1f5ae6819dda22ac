"""Result dataclasses returned by provisioning operations."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ProvisionResult:
    name: str
    vmid: int = 0
    volid: str = ''
    snippet: str = ''
    user_data: str = ''
    dry_run: bool = False
    steps: list[str] = field(default_factory=list)
    rolled_back: bool = False

    def as_dict(self) -> dict[str, object]:
        return {
            'name': self.name,
            'vmid': self.vmid,
            'volid': self.volid,
            'snippet': self.snippet,
            'dry_run': self.dry_run,
            'steps': list(self.steps),
            'rolled_back': self.rolled_back,
        }
