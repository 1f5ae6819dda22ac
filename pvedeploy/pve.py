"""Proxmox cluster queries: guest inventory, name collisions, and VMID allocation."""

from __future__ import annotations

import json
from dataclasses import dataclass

from loguru import logger

from .runtime import pct_cmd, pvesh_cmd, pvesm_cmd, qm_cmd
from .util import run_cmd, which

log = logger

DEFAULT_VMID_START = 900
MAX_VMID = 999999999


@dataclass(frozen=True)
class Guest:
    vmid: int
    name: str
    kind: str = 'qemu'
    node: str = ''


def cluster_resources() -> list[Guest] | None:
    """Return all VMs and CTs of the cluster, or None when pvesh is unusable."""
    if which('pvesh') is None:
        log.debug('pvesh not found; cluster inventory unavailable')
        return None
    res = run_cmd(
        pvesh_cmd(
            'get', '/cluster/resources', '--type', 'vm', '--output-format', 'json'
        ),
        check=False,
        capture=True,
    )
    if res.code != 0:
        log.warning(
            'Cluster inventory query failed (code={}): {}',
            res.code,
            res.stderr.strip() or '(no stderr)',
        )
        return None
    try:
        rows = json.loads(res.stdout or '[]')
    except json.JSONDecodeError as ex:
        log.warning('Could not parse pvesh cluster inventory: {}', ex)
        return None
    guests: list[Guest] = []
    for row in rows if isinstance(rows, list) else []:
        if not isinstance(row, dict) or 'vmid' not in row:
            continue
        try:
            vmid = int(row['vmid'])
        except (TypeError, ValueError):
            continue
        guests.append(
            Guest(
                vmid=vmid,
                name=str(row.get('name', '') or ''),
                kind=str(row.get('type', 'qemu') or 'qemu'),
                node=str(row.get('node', '') or ''),
            )
        )
    return guests


def _parse_qm_list(text: str) -> list[Guest]:
    guests: list[Guest] = []
    for line in text.splitlines()[1:]:
        parts = line.split()
        if len(parts) >= 2 and parts[0].isdigit():
            guests.append(Guest(vmid=int(parts[0]), name=parts[1], kind='qemu'))
    return guests


def _parse_pct_list(text: str) -> list[Guest]:
    guests: list[Guest] = []
    for line in text.splitlines()[1:]:
        parts = line.split()
        if len(parts) >= 2 and parts[0].isdigit():
            # The Lock column is usually blank, so the name is the last field.
            guests.append(Guest(vmid=int(parts[0]), name=parts[-1], kind='lxc'))
    return guests


def local_guests() -> list[Guest]:
    guests: list[Guest] = []
    qm = run_cmd(qm_cmd('list'), check=False, capture=True)
    if qm.code == 0:
        guests.extend(_parse_qm_list(qm.stdout))
    else:
        log.warning('qm list failed (code={})', qm.code)
    if which('pct') is not None:
        pct = run_cmd(pct_cmd('list'), check=False, capture=True)
        if pct.code == 0:
            guests.extend(_parse_pct_list(pct.stdout))
    return guests


def known_guests() -> list[Guest]:
    """Cluster-wide inventory, falling back to the local node."""
    guests = cluster_resources()
    if guests is None:
        log.info('Falling back to local node inventory (qm list / pct list)')
        return local_guests()
    return guests


def name_exists(name: str) -> bool:
    guests = cluster_resources()
    if guests is not None and any(g.name == name for g in guests):
        return True
    # The cluster view can lag behind the local node; always double check.
    res = run_cmd(qm_cmd('list'), check=False, capture=True)
    return any(g.name == name for g in _parse_qm_list(res.stdout))


def first_free_vmid(taken: set[int], *, start: int = DEFAULT_VMID_START) -> int:
    vmid = start
    while vmid in taken:
        vmid += 1
    if vmid > MAX_VMID:
        raise RuntimeError(f'No free VMID at or above {start}')
    return vmid


def next_vmid(*, start: int | None = None) -> int:
    """Allocate a VMID, preferring the cluster's own allocator."""
    if start is None and which('pvesh') is not None:
        res = run_cmd(
            pvesh_cmd('get', '/cluster/nextid'), check=False, capture=True
        )
        text = res.stdout.strip().strip('"')
        if res.code == 0 and text.isdigit():
            log.debug('Cluster allocator returned VMID {}', text)
            return int(text)
        log.warning(
            'pvesh get /cluster/nextid failed (code={}); scanning for a free VMID',
            res.code,
        )
    taken = {g.vmid for g in known_guests()}
    vmid = first_free_vmid(
        taken, start=DEFAULT_VMID_START if start is None else start
    )
    log.debug('Selected free VMID {} ({} ids taken)', vmid, len(taken))
    return vmid


def vmid_taken(vmid: int) -> bool:
    return any(g.vmid == int(vmid) for g in known_guests())


def _parse_pvesm_list(text: str) -> str:
    for line in text.splitlines()[1:]:
        parts = line.split()
        if parts and ':' in parts[0]:
            return parts[0]
    return ''


def _parse_unused_volid(config_text: str) -> str:
    for line in config_text.splitlines():
        key, sep, value = line.partition(':')
        if sep and key.strip().startswith('unused'):
            return value.strip().split(',')[0]
    return ''


def find_imported_volid(storage: str, vmid: int) -> str:
    """Locate the disk volume `qm importdisk` created for this VM."""
    res = run_cmd(
        pvesm_cmd('list', storage, '--vmid', vmid, '--content', 'images'),
        check=False,
        capture=True,
    )
    volid = _parse_pvesm_list(res.stdout) if res.code == 0 else ''
    if volid:
        return volid
    cfg = run_cmd(qm_cmd('config', vmid), check=False, capture=True)
    if cfg.code == 0:
        return _parse_unused_volid(cfg.stdout)
    return ''


def vm_status(vmid: int) -> str:
    res = run_cmd(qm_cmd('status', vmid), check=False, capture=True)
    if res.code != 0:
        return ''
    # "status: running"
    return res.stdout.strip().partition(':')[2].strip()


def destroy_vm(vmid: int) -> None:
    run_cmd(qm_cmd('stop', vmid), check=False, capture=True)
    run_cmd(
        qm_cmd('destroy', vmid, '--purge', '1', '--destroy-unreferenced-disks', '1'),
        check=True,
        capture=True,
    )
    log.info('VM {} destroyed', vmid)
