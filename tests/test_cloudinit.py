"""Tests for cloud-init user-data rendering."""

from __future__ import annotations

import os
from pathlib import Path

import yaml

from pvedeploy.cloudinit import (
    build_user_data,
    render_user_data,
    snippet_volume,
    write_snippet,
)
from pvedeploy.config import DeployConfig

KEY = 'ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIGx0 ops@example'


def _cfg(tmp_path: Path | None = None) -> DeployConfig:
    cfg = DeployConfig()
    cfg.vm.customer = 'acme'
    if tmp_path is not None:
        cfg.storage.snippets_dir = str(tmp_path / 'snippets')
    return cfg


def test_build_user_data_vm_profile() -> None:
    cfg = _cfg()
    cfg.cloud_init.extra_packages = ['htop', 'qemu-guest-agent', 'jq']
    data = build_user_data(cfg, 'acme-vm1', [KEY])
    assert data['hostname'] == 'acme-vm1'
    assert data['fqdn'] == 'acme-vm1'
    user = data['users'][0]
    assert user['name'] == 'ntq'
    assert user['lock_passwd'] is True
    assert user['ssh_authorized_keys'] == [KEY]
    assert data['packages'] == ['qemu-guest-agent', 'htop', 'jq']
    assert data['runcmd'] == [['systemctl', 'enable', '--now', 'qemu-guest-agent']]
    assert 'write_files' not in data


def test_build_user_data_fqdn_with_search_domain() -> None:
    cfg = _cfg()
    cfg.network.search_domain = 'corp.example.'
    data = build_user_data(cfg, 'acme-vm1', [KEY])
    assert data['fqdn'] == 'acme-vm1.corp.example'


def test_build_user_data_orb_profile() -> None:
    cfg = _cfg()
    cfg.vm.profile = 'orb'
    cfg.cloud_init.tailscale_authkey = 'tskey-auth-123'
    data = build_user_data(cfg, 'ntq-acme-orb1', [KEY])
    assert data['write_files'][0]['path'] == '/etc/ntq/role'
    assert 'ROLE=orb' in data['write_files'][0]['content']
    assert data['runcmd'][-1] == [
        'tailscale',
        'up',
        '--authkey',
        'tskey-auth-123',
        '--hostname',
        'ntq-acme-orb1',
        '--accept-dns=false',
        '--ssh',
    ]


def test_render_escapes_yaml_significant_values() -> None:
    cfg = _cfg()
    cfg.cloud_init.user = 'ops'
    weird_key = 'ssh-rsa AAAAB3Nza "quoted" & #not-a-comment: {x}'
    data = build_user_data(cfg, 'acme-vm1', [weird_key])
    text = render_user_data(data)
    assert text.startswith('#cloud-config\n')
    parsed = yaml.safe_load(text)
    assert parsed['users'][0]['ssh_authorized_keys'] == [weird_key]
    assert parsed['hostname'] == 'acme-vm1'


def test_write_snippet_and_volume(tmp_path: Path) -> None:
    cfg = _cfg(tmp_path)
    path = write_snippet(cfg, 'acme-vm1', '#cloud-config\n{}\n')
    assert path == tmp_path / 'snippets' / 'acme-vm1-user-data.yaml'
    assert path.read_text(encoding='utf-8') == '#cloud-config\n{}\n'
    assert snippet_volume(cfg, path) == 'local:snippets/acme-vm1-user-data.yaml'


def test_write_snippet_with_secret_is_private(tmp_path: Path) -> None:
    cfg = _cfg(tmp_path)
    cfg.cloud_init.tailscale_authkey = 'tskey-auth-123'
    path = write_snippet(cfg, 'ntq-acme-orb1', '#cloud-config\n')
    assert os.stat(path).st_mode & 0o777 == 0o600


def test_write_snippet_with_secret_is_created_private(monkeypatch, tmp_path: Path) -> None:
    cfg = _cfg(tmp_path)
    cfg.cloud_init.tailscale_authkey = 'tskey-auth-123'
    stale = tmp_path / 'snippets' / 'ntq-acme-orb1-user-data.yaml'
    stale.parent.mkdir(parents=True)
    stale.write_text('old', encoding='utf-8')
    stale.chmod(0o644)
    modes = []
    real_open = os.open

    def recording_open(path, flags, mode=0o777, *args, **kwargs):
        modes.append((Path(path).name, mode))
        return real_open(path, flags, mode, *args, **kwargs)

    monkeypatch.setattr(os, 'open', recording_open)
    path = write_snippet(cfg, 'ntq-acme-orb1', '#cloud-config\n')
    assert modes == [(stale.name, 0o600)]
    assert os.stat(path).st_mode & 0o777 == 0o600
    assert path.read_text(encoding='utf-8') == '#cloud-config\n'


def test_write_snippet_dry_run(tmp_path: Path) -> None:
    cfg = _cfg(tmp_path)
    path = write_snippet(cfg, 'acme-vm1', 'x', dry_run=True)
    assert not path.exists()
    assert not (tmp_path / 'snippets').exists()
