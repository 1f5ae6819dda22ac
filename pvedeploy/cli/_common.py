from __future__ import annotations

from pathlib import Path

import scriptconfig as scfg
from loguru import logger

from ..config import DeployConfig, load_effective
from ..naming import parse_index

log = logger


class _BaseCommand(scfg.DataConfig):
    """Base options shared by all commands."""

    config = scfg.Value(
        None,
        help='Path to config TOML (default: ./.pvedeploy.toml, else the user config dir).',
    )
    verbose = scfg.Value(
        0,
        short_alias=['v'],
        isflag='counter',
        help='Increase verbosity (-v, -vv).',
    )


class _VMOptions(_BaseCommand):
    """Options describing the VM; unset values fall back to the config file."""

    customer = scfg.Value(None, help='REQUIRED. Customer/site code (e.g., axero).')
    role = scfg.Value(None, help='Role (default: vm, or orb for the orb profile).')
    index = scfg.Value(None, type=str, help='Index digits, kept as typed (default: 1).')
    site = scfg.Value(None, help='Optional site suffix.')
    profile = scfg.Value(
        None,
        help='Deploy profile: vm (plain VM) or orb (ntq- prefix, Tailscale). Default: vm.',
    )
    storage = scfg.Value(None, help='Disk storage (default: local-lvm).')
    snippets_storage = scfg.Value(None, help='Snippets storage (default: local).')
    bridge = scfg.Value(None, help='Bridge (default: vmbr0).')
    vlan = scfg.Value(None, type=int, help='VLAN tag (default: 0 = untagged).')
    cpu = scfg.Value(None, type=int, help='vCPU cores (default: 2).')
    ram = scfg.Value(None, type=int, help='Memory in MB (default: 4096).')
    disk = scfg.Value(None, help='Disk size (default: 20G).')
    ssh_key_url = scfg.Value(None, help='URL of the SSH public key(s) to authorize.')
    ci_user = scfg.Value(None, help='Cloud-init user (default: ntq).')
    dns = scfg.Value(None, help='DNS server.')
    search_domain = scfg.Value(None, help='Search domain.')
    dhcp = scfg.Value(False, isflag=True, help='Use DHCP (default).')
    ip = scfg.Value(None, help='Static IP in CIDR form (implies static mode).')
    gw = scfg.Value(None, help='Gateway IP (static mode).')
    extra_packages = scfg.Value(
        None, help='Additional apt packages (space separated).'
    )
    image_url = scfg.Value(None, help='Override Debian 13 cloud image URL.')
    tailscale_authkey = scfg.Value(None, help='Tailscale auth key (orb profile).')


_OVERRIDES = [
    # (cli option, config section, config attribute)
    ('customer', 'vm', 'customer'),
    ('role', 'vm', 'role'),
    ('site', 'vm', 'site'),
    ('profile', 'vm', 'profile'),
    ('cpu', 'vm', 'cpus'),
    ('ram', 'vm', 'ram_mb'),
    ('disk', 'vm', 'disk'),
    ('storage', 'storage', 'storage'),
    ('snippets_storage', 'storage', 'snippets_storage'),
    ('bridge', 'network', 'bridge'),
    ('vlan', 'network', 'vlan'),
    ('dns', 'network', 'dns'),
    ('search_domain', 'network', 'search_domain'),
    ('gw', 'network', 'gateway'),
    ('ssh_key_url', 'cloud_init', 'ssh_key_url'),
    ('ci_user', 'cloud_init', 'user'),
    ('tailscale_authkey', 'cloud_init', 'tailscale_authkey'),
    ('image_url', 'image', 'url'),
]
_INT_OPTIONS = {'vlan', 'cpu', 'ram'}


def _apply_overrides(cfg: DeployConfig, args) -> DeployConfig:
    """Layer explicitly given CLI options over config file values."""
    for opt, section, attr in _OVERRIDES:
        value = getattr(args, opt, None)
        if value is None:
            continue
        if opt in _INT_OPTIONS:
            value = int(value)
        else:
            value = str(value).strip()
        setattr(getattr(cfg, section), attr, value)
    if args.index is not None:
        cfg.vm.index = parse_index(args.index)
    if args.extra_packages is not None:
        value = args.extra_packages
        if isinstance(value, str):
            value = value.replace(',', ' ').split()
        cfg.cloud_init.extra_packages = list(value)
    if args.ip:
        cfg.network.ip_cidr = str(args.ip).strip()
        cfg.network.dhcp = False
    elif args.dhcp:
        cfg.network.dhcp = True
    return cfg


def _load_cfg_with_path(config_path: str | None) -> tuple[DeployConfig, Path]:
    return load_effective(config_path)


def _resolve_cfg(args) -> tuple[DeployConfig, Path]:
    cfg, path = _load_cfg_with_path(args.config)
    log.debug('Loaded config from {}', path if path.exists() else '(built-in defaults)')
    return _apply_overrides(cfg, args), path


__all__ = [name for name in globals() if not name.startswith('__')]
