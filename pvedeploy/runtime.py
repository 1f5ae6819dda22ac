"""Runtime helpers for constructing Proxmox CLI command arguments."""

from __future__ import annotations

QM = 'qm'
PVESH = 'pvesh'
PVESM = 'pvesm'
PCT = 'pct'


def qm_cmd(*args: object) -> list[str]:
    return [QM, *(str(a) for a in args)]


def pvesh_cmd(*args: object) -> list[str]:
    return [PVESH, *(str(a) for a in args)]


def pvesm_cmd(*args: object) -> list[str]:
    return [PVESM, *(str(a) for a in args)]


def pct_cmd(*args: object) -> list[str]:
    return [PCT, *(str(a) for a in args)]


def net0_value(bridge: str, vlan: int = 0, *, model: str = 'virtio') -> str:
    value = f'{model},bridge={bridge}'
    if int(vlan or 0) != 0:
        value += f',tag={int(vlan)}'
    return value


def ipconfig0_value(
    *, dhcp: bool, ip_cidr: str = '', gateway: str = ''
) -> str:
    if dhcp:
        return 'ip=dhcp'
    value = f'ip={ip_cidr}'
    if gateway:
        value += f',gw={gateway}'
    return value
