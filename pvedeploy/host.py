"""Host prerequisite checks for a Proxmox VE node."""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from .util import which

log = logger

REQUIRED_CMDS = [
    'qm',
    'pvesm',
    'curl',
]
OPTIONAL_CMDS = ['pvesh', 'pct']


def check_commands() -> tuple[list[str], list[str]]:
    missing = [c for c in REQUIRED_CMDS if which(c) is None]
    missing_opt = [c for c in OPTIONAL_CMDS if which(c) is None]
    return missing, missing_opt


def is_proxmox_host() -> bool:
    return Path('/etc/pve').exists()
