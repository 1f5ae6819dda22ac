"""Cloud-init user-data rendering and Proxmox snippet placement.

User-data is assembled as a plain dict and serialized with ``yaml.safe_dump``,
so hostnames, keys and package names are always emitted as properly quoted
YAML scalars.
"""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from loguru import logger

from .config import DeployConfig
from .util import ensure_dir

log = logger

BASE_PACKAGES = ['qemu-guest-agent']
TAILSCALE_INSTALL_URL = 'https://tailscale.com/install.sh'
ROLE_METADATA_PATH = '/etc/ntq/role'


def _dedupe(items: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            out.append(item)
    return out


def fqdn_for(cfg: DeployConfig, name: str) -> str:
    domain = (cfg.network.search_domain or '').strip().strip('.')
    return f'{name}.{domain}' if domain else name


def tailscale_up_cmd(authkey: str, hostname: str) -> list[str]:
    return [
        'tailscale',
        'up',
        '--authkey',
        authkey,
        '--hostname',
        hostname,
        '--accept-dns=false',
        '--ssh',
    ]


def build_user_data(
    cfg: DeployConfig, name: str, ssh_keys: list[str]
) -> dict:
    packages = _dedupe(BASE_PACKAGES + list(cfg.cloud_init.extra_packages))
    data: dict = {
        'hostname': name,
        'fqdn': fqdn_for(cfg, name),
        'manage_etc_hosts': True,
        'users': [
            {
                'name': cfg.cloud_init.user,
                'sudo': ['ALL=(ALL) NOPASSWD:ALL'],
                'groups': 'sudo',
                'shell': '/bin/bash',
                'lock_passwd': True,
                'ssh_authorized_keys': list(ssh_keys),
            }
        ],
        'package_update': True,
        'package_upgrade': True,
        'packages': packages,
    }
    runcmd: list = [['systemctl', 'enable', '--now', 'qemu-guest-agent']]
    if cfg.vm.profile == 'orb':
        data['write_files'] = [
            {
                'path': ROLE_METADATA_PATH,
                'permissions': '0644',
                'content': (
                    f'CUSTOMER={cfg.vm.customer}\n'
                    f'ROLE={cfg.role}\n'
                    f'HOSTNAME={name}\n'
                ),
            }
        ]
        runcmd.append(['sh', '-c', f'curl -fsSL {TAILSCALE_INSTALL_URL} | sh'])
        if cfg.cloud_init.tailscale_authkey:
            runcmd.append(
                tailscale_up_cmd(cfg.cloud_init.tailscale_authkey, name)
            )
        else:
            runcmd.append(['echo', 'No tailscale auth key provided'])
    data['runcmd'] = runcmd
    return data


def render_user_data(data: dict) -> str:
    body = yaml.safe_dump(
        data, sort_keys=False, default_flow_style=False, width=4096
    )
    return '#cloud-config\n' + body


def snippet_path(cfg: DeployConfig, name: str) -> Path:
    return Path(cfg.storage.snippets_dir) / f'{name}-user-data.yaml'


def snippet_volume(cfg: DeployConfig, path: Path) -> str:
    return f'{cfg.storage.snippets_storage}:snippets/{path.name}'


def write_snippet(
    cfg: DeployConfig, name: str, text: str, *, dry_run: bool = False
) -> Path:
    path = snippet_path(cfg, name)
    if dry_run:
        log.info('DRYRUN: write cloud-init user-data {}', path)
        return path
    ensure_dir(path.parent)
    # Set the mode before any content is written.
    mode = 0o600 if cfg.cloud_init.tailscale_authkey else 0o644
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    os.fchmod(fd, mode)
    with os.fdopen(fd, 'w', encoding='utf-8') as file:
        file.write(text)
    log.info('Wrote cloud-init user-data: {}', path)
    return path
