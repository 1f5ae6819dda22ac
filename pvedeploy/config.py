"""Deploy configuration dataclasses, TOML persistence, and validation."""

from __future__ import annotations

import ipaddress
import re
import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path

import ubelt as ub

from .errors import ValidationError
from .naming import (
    PROFILE_DEFAULT_ROLES,
    PROFILE_PREFIXES,
    name_for_profile,
    name_problems,
    profile_prefix,
)
from .util import expand

DEFAULT_DEBIAN_TRIXIE_IMG_URL = (
    'https://cloud.debian.org/images/cloud/trixie/latest/'
    'debian-13-genericcloud-amd64.qcow2'
)
DEFAULT_SSH_KEY_URL = 'https://pub.neoteq.be/vm/vm-key.pub'
LOCAL_CONFIG_NAME = '.pvedeploy.toml'

_DISK_SIZE_RE = re.compile(r'^\+?[0-9]+(?:\.[0-9]+)?[KMGT]?$')


@dataclass
class VMConfig:
    customer: str = ''
    role: str = ''
    index: str = '1'
    site: str = ''
    profile: str = 'vm'
    cpus: int = 2
    ram_mb: int = 4096
    disk: str = '20G'


@dataclass
class StorageConfig:
    storage: str = 'local-lvm'
    snippets_storage: str = 'local'
    snippets_dir: str = '/var/lib/vz/snippets'
    images_dir: str = '/var/lib/vz/template/tmp'


@dataclass
class NetworkConfig:
    bridge: str = 'vmbr0'
    vlan: int = 0
    dhcp: bool = True
    ip_cidr: str = ''
    gateway: str = ''
    dns: str = ''
    search_domain: str = ''


@dataclass
class CloudInitConfig:
    user: str = 'ntq'
    ssh_key_url: str = DEFAULT_SSH_KEY_URL
    extra_packages: list[str] = field(default_factory=list)
    tailscale_authkey: str = ''


@dataclass
class ImageConfig:
    url: str = DEFAULT_DEBIAN_TRIXIE_IMG_URL
    redownload: bool = False

    @property
    def cache_name(self) -> str:
        return self.url.rstrip('/').rsplit('/', 1)[-1] or 'cloud-image.qcow2'


@dataclass
class DeployConfig:
    vm: VMConfig = field(default_factory=VMConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    cloud_init: CloudInitConfig = field(default_factory=CloudInitConfig)
    image: ImageConfig = field(default_factory=ImageConfig)
    verbosity: int = 1

    def expanded_paths(self) -> 'DeployConfig':
        self.storage.snippets_dir = expand(self.storage.snippets_dir)
        self.storage.images_dir = expand(self.storage.images_dir)
        return self

    @property
    def role(self) -> str:
        """Role with the profile default applied."""
        return self.vm.role or PROFILE_DEFAULT_ROLES.get(self.vm.profile, 'vm')

    @property
    def name(self) -> str:
        return name_for_profile(
            self.vm.profile,
            self.vm.customer,
            self.role,
            self.vm.index,
            self.vm.site,
        )


SECTIONS = ('vm', 'storage', 'network', 'cloud_init', 'image')


_TOML_ESCAPES = {
    '\\': '\\\\',
    '"': '\\"',
    '\b': '\\b',
    '\t': '\\t',
    '\n': '\\n',
    '\f': '\\f',
    '\r': '\\r',
}


def _toml_escape(s: str) -> str:
    out: list[str] = []
    for ch in s:
        if ch in _TOML_ESCAPES:
            out.append(_TOML_ESCAPES[ch])
        elif ord(ch) < 0x20 or ord(ch) == 0x7F:
            out.append(f'\\u{ord(ch):04X}')
        else:
            out.append(ch)
    return ''.join(out)


def _emit_toml_kv(lines: list[str], key: str, val: object) -> None:
    if isinstance(val, bool):
        lines.append(f'{key} = {"true" if val else "false"}')
    elif isinstance(val, int):
        lines.append(f'{key} = {val}')
    elif isinstance(val, list):
        parts = [f'"{_toml_escape(str(item))}"' for item in val]
        lines.append(f'{key} = [{", ".join(parts)}]')
    else:
        lines.append(f'{key} = "{_toml_escape(str(val))}"')


def dump_toml(cfg: DeployConfig) -> str:
    d = asdict(cfg)
    lines: list[str] = []
    # Top-level keys must precede the first table header.
    verbosity = int(d.get('verbosity', 1))
    if verbosity != 1:
        lines.append(f'verbosity = {verbosity}')
        lines.append('')
    for section in SECTIONS:
        lines.append(f'[{section}]')
        for k, v in d[section].items():
            _emit_toml_kv(lines, k, v)
        lines.append('')
    return '\n'.join(lines).rstrip() + '\n'


def cfg_from_dict(raw: dict) -> DeployConfig:
    cfg = DeployConfig()
    for section in SECTIONS:
        body = raw.get(section, None)
        if isinstance(body, dict):
            obj = getattr(cfg, section)
            for k, v in body.items():
                if k in obj.__dataclass_fields__:
                    setattr(obj, k, v)
    if 'verbosity' in raw:
        cfg.verbosity = int(raw['verbosity'])
    # Names keep the index digits as written; store them as text.
    if isinstance(cfg.vm.index, int) and not isinstance(cfg.vm.index, bool):
        cfg.vm.index = str(cfg.vm.index)
    # Accept a whitespace separated string like the --extra-packages flag.
    pkgs = cfg.cloud_init.extra_packages
    if isinstance(pkgs, str):
        cfg.cloud_init.extra_packages = pkgs.split()
    return cfg


def load(path: Path) -> DeployConfig:
    raw = tomllib.loads(path.read_text(encoding='utf-8'))
    return cfg_from_dict(raw)


def save(path: Path, cfg: DeployConfig) -> None:
    path.write_text(dump_toml(cfg), encoding='utf-8')


def user_config_path() -> Path:
    return Path(ub.Path.appdir('pvedeploy', type='config')) / 'config.toml'


def default_config_path() -> Path:
    local = Path.cwd() / LOCAL_CONFIG_NAME
    if local.exists():
        return local
    return user_config_path()


def load_effective(config_path: str | Path | None) -> tuple[DeployConfig, Path]:
    """Load an explicit config (must exist) or the default one (may be absent)."""
    if config_path:
        path = Path(expand(str(config_path))).resolve()
        if not path.exists():
            raise FileNotFoundError(f'Config not found: {path}')
        return load(path).expanded_paths(), path
    path = default_config_path()
    if path.exists():
        return load(path).expanded_paths(), path
    return DeployConfig().expanded_paths(), path


def _is_ip(text: str, *, version: int | None = None) -> bool:
    try:
        addr = ipaddress.ip_address(text)
    except ValueError:
        return False
    return version is None or addr.version == version


def validation_problems(cfg: DeployConfig) -> list[str]:
    problems: list[str] = []
    if cfg.vm.profile not in PROFILE_PREFIXES:
        problems.append(
            f'unknown profile {cfg.vm.profile!r}; expected one of: '
            f'{", ".join(sorted(PROFILE_PREFIXES))}'
        )
        prefix = ''
    else:
        prefix = profile_prefix(cfg.vm.profile)
    problems.extend(
        name_problems(
            cfg.vm.customer, cfg.role, cfg.vm.index, cfg.vm.site, prefix=prefix
        )
    )
    if not isinstance(cfg.vm.cpus, int) or cfg.vm.cpus <= 0:
        problems.append(f'--cpu must be a positive integer (got {cfg.vm.cpus!r})')
    if not isinstance(cfg.vm.ram_mb, int) or cfg.vm.ram_mb <= 0:
        problems.append(f'--ram must be a positive integer of MB (got {cfg.vm.ram_mb!r})')
    if not _DISK_SIZE_RE.match(str(cfg.vm.disk or '')):
        problems.append(
            f'--disk must look like 20G, 512M or +10G (got {cfg.vm.disk!r})'
        )
    if not isinstance(cfg.network.vlan, int) or not 0 <= cfg.network.vlan <= 4094:
        problems.append(f'--vlan must be between 0 and 4094 (got {cfg.network.vlan!r})')
    if not cfg.network.bridge:
        problems.append('--bridge must not be empty')
    if not cfg.network.dhcp:
        if not cfg.network.ip_cidr:
            problems.append('--ip required for static configuration')
        else:
            try:
                iface = ipaddress.ip_interface(cfg.network.ip_cidr)
            except ValueError:
                problems.append(f'--ip {cfg.network.ip_cidr!r} is not a valid CIDR address')
            else:
                if iface.version != 4:
                    problems.append(
                        f'--ip {cfg.network.ip_cidr!r} must be an IPv4 address (ipconfig0 ip=)'
                    )
                elif '/' not in cfg.network.ip_cidr:
                    problems.append(
                        f'--ip {cfg.network.ip_cidr!r} needs a prefix length (e.g. {iface.ip}/24)'
                    )
        if cfg.network.gateway and not _is_ip(cfg.network.gateway, version=4):
            problems.append(f'--gw {cfg.network.gateway!r} is not a valid IPv4 address')
    if cfg.network.dns and not _is_ip(cfg.network.dns):
        problems.append(f'--dns {cfg.network.dns!r} is not a valid IP address')
    if not cfg.cloud_init.user:
        problems.append('--ci-user must not be empty')
    if not cfg.cloud_init.ssh_key_url:
        problems.append('--ssh-key-url must not be empty')
    if cfg.vm.profile == 'orb' and not cfg.cloud_init.tailscale_authkey:
        problems.append('--tailscale-authkey required')
    if not cfg.image.url:
        problems.append('--image-url must not be empty')
    if not cfg.storage.storage:
        problems.append('--storage must not be empty')
    if not cfg.storage.snippets_storage:
        problems.append('--snippets-storage must not be empty')
    return problems


def validate(cfg: DeployConfig) -> None:
    problems = validation_problems(cfg)
    if problems:
        raise ValidationError(problems)
