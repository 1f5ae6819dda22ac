"""Tests for Proxmox inventory parsing and VMID allocation."""

from __future__ import annotations

import json

from pvedeploy import pve
from pvedeploy.util import CmdResult

QM_LIST = """      VMID NAME                 STATUS     MEM(MB)    BOOTDISK(GB) PID
       900 acme-vm1             running    4096              20.00 1234
       901 ntq-acme-orb1        stopped    4096              20.00 0
"""
PCT_LIST = """VMID       Status     Lock         Name
902        running                 dns1
"""
PVESM_LIST = """Volid                   Format  Type             Size VMID
local-lvm:vm-905-disk-0 raw     images    2147483648 905
"""


def _fake_runner(responses):
    calls = []

    def fake(cmd, **kwargs):
        calls.append(list(cmd))
        for prefix, res in responses:
            if list(cmd[: len(prefix)]) == list(prefix):
                return res
        return CmdResult(1, '', 'unexpected command')

    return fake, calls


def _all_tools(monkeypatch) -> None:
    monkeypatch.setattr('pvedeploy.pve.which', lambda cmd: f'/usr/bin/{cmd}')


def test_cluster_resources_parses_json(monkeypatch) -> None:
    _all_tools(monkeypatch)
    rows = [
        {'vmid': 100, 'name': 'web', 'type': 'qemu', 'node': 'pve1'},
        {'vmid': '101', 'name': 'db', 'type': 'lxc', 'node': 'pve2'},
        {'id': 'storage/pve1/local'},
    ]
    fake, calls = _fake_runner(
        [(['pvesh', 'get', '/cluster/resources'], CmdResult(0, json.dumps(rows), ''))]
    )
    monkeypatch.setattr('pvedeploy.pve.run_cmd', fake)
    guests = pve.cluster_resources()
    assert guests == [
        pve.Guest(100, 'web', 'qemu', 'pve1'),
        pve.Guest(101, 'db', 'lxc', 'pve2'),
    ]
    assert '--output-format' in calls[0]


def test_cluster_resources_failure_is_detected(monkeypatch) -> None:
    _all_tools(monkeypatch)
    fake, _ = _fake_runner(
        [(['pvesh'], CmdResult(255, '', 'ipcc_send_rec failed'))]
    )
    monkeypatch.setattr('pvedeploy.pve.run_cmd', fake)
    assert pve.cluster_resources() is None


def test_cluster_resources_without_pvesh(monkeypatch) -> None:
    monkeypatch.setattr('pvedeploy.pve.which', lambda cmd: None)
    assert pve.cluster_resources() is None


def test_local_guests_parses_qm_and_pct(monkeypatch) -> None:
    _all_tools(monkeypatch)
    fake, _ = _fake_runner(
        [
            (['qm', 'list'], CmdResult(0, QM_LIST, '')),
            (['pct', 'list'], CmdResult(0, PCT_LIST, '')),
        ]
    )
    monkeypatch.setattr('pvedeploy.pve.run_cmd', fake)
    guests = pve.local_guests()
    assert [(g.vmid, g.name, g.kind) for g in guests] == [
        (900, 'acme-vm1', 'qemu'),
        (901, 'ntq-acme-orb1', 'qemu'),
        (902, 'dns1', 'lxc'),
    ]


def test_name_exists_cluster_and_local(monkeypatch) -> None:
    monkeypatch.setattr(
        'pvedeploy.pve.cluster_resources',
        lambda: [pve.Guest(300, 'remote-vm1', 'qemu', 'pve2')],
    )
    fake, _ = _fake_runner([(['qm', 'list'], CmdResult(0, QM_LIST, ''))])
    monkeypatch.setattr('pvedeploy.pve.run_cmd', fake)
    assert pve.name_exists('remote-vm1') is True
    assert pve.name_exists('acme-vm1') is True
    assert pve.name_exists('acme-vm9') is False


def test_next_vmid_prefers_cluster_allocator(monkeypatch) -> None:
    _all_tools(monkeypatch)
    fake, _ = _fake_runner(
        [(['pvesh', 'get', '/cluster/nextid'], CmdResult(0, '"105"\n', ''))]
    )
    monkeypatch.setattr('pvedeploy.pve.run_cmd', fake)
    assert pve.next_vmid() == 105


def test_next_vmid_falls_back_when_allocator_fails(monkeypatch) -> None:
    _all_tools(monkeypatch)
    rows = [{'vmid': v, 'name': f'g{v}'} for v in (900, 901, 903)]
    fake, calls = _fake_runner(
        [
            (['pvesh', 'get', '/cluster/nextid'], CmdResult(2, '', 'boom')),
            (['pvesh', 'get', '/cluster/resources'], CmdResult(0, json.dumps(rows), '')),
        ]
    )
    monkeypatch.setattr('pvedeploy.pve.run_cmd', fake)
    assert pve.next_vmid() == 902
    assert calls[0][:3] == ['pvesh', 'get', '/cluster/nextid']


def test_next_vmid_local_fallback_without_pvesh(monkeypatch) -> None:
    monkeypatch.setattr(
        'pvedeploy.pve.which', lambda cmd: None if cmd == 'pvesh' else f'/usr/sbin/{cmd}'
    )
    fake, _ = _fake_runner(
        [
            (['qm', 'list'], CmdResult(0, QM_LIST, '')),
            (['pct', 'list'], CmdResult(0, PCT_LIST, '')),
        ]
    )
    monkeypatch.setattr('pvedeploy.pve.run_cmd', fake)
    assert pve.next_vmid() == 903


def test_next_vmid_explicit_start_scans(monkeypatch) -> None:
    monkeypatch.setattr(
        'pvedeploy.pve.known_guests', lambda: [pve.Guest(200, 'a'), pve.Guest(201, 'b')]
    )
    assert pve.next_vmid(start=200) == 202


def test_find_imported_volid(monkeypatch) -> None:
    fake, calls = _fake_runner(
        [(['pvesm', 'list', 'local-lvm'], CmdResult(0, PVESM_LIST, ''))]
    )
    monkeypatch.setattr('pvedeploy.pve.run_cmd', fake)
    assert pve.find_imported_volid('local-lvm', 905) == 'local-lvm:vm-905-disk-0'
    assert calls[0] == [
        'pvesm', 'list', 'local-lvm', '--vmid', '905', '--content', 'images'
    ]


def test_find_imported_volid_falls_back_to_unused_disk(monkeypatch) -> None:
    qm_config = 'boot: c\nname: acme-vm1\nunused0: tank:vm-905-disk-0\n'
    fake, _ = _fake_runner(
        [
            (['pvesm', 'list'], CmdResult(0, 'Volid Format Type Size VMID\n', '')),
            (['qm', 'config', '905'], CmdResult(0, qm_config, '')),
        ]
    )
    monkeypatch.setattr('pvedeploy.pve.run_cmd', fake)
    assert pve.find_imported_volid('tank', 905) == 'tank:vm-905-disk-0'


def test_vm_status_and_destroy(monkeypatch) -> None:
    fake, calls = _fake_runner(
        [
            (['qm', 'status'], CmdResult(0, 'status: running\n', '')),
            (['qm', 'stop'], CmdResult(0, '', '')),
            (['qm', 'destroy'], CmdResult(0, '', '')),
        ]
    )
    monkeypatch.setattr('pvedeploy.pve.run_cmd', fake)
    assert pve.vm_status(900) == 'running'
    pve.destroy_vm(900)
    assert calls[1][:3] == ['qm', 'stop', '900']
    assert calls[2][:4] == ['qm', 'destroy', '900', '--purge']
