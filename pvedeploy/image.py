"""Cloud image caching and SSH public key retrieval."""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from .config import DeployConfig
from .errors import ProvisionError
from .util import CmdError, ensure_dir, run_cmd

log = logger

SSH_KEY_PREFIXES = ('ssh-', 'ecdsa-', 'sk-')


def image_path(cfg: DeployConfig) -> Path:
    return Path(cfg.storage.images_dir) / cfg.image.cache_name


def fetch_image(cfg: DeployConfig, *, dry_run: bool = False) -> Path:
    base_img = image_path(cfg)
    tmp_img = Path(str(base_img) + '.part')
    url = cfg.image.url
    if base_img.exists() and base_img.stat().st_size > 0 and not cfg.image.redownload:
        log.info('Using cached image: {}', base_img)
        return base_img
    if dry_run:
        log.info(
            'DRYRUN: curl -fL -o {} {}; mv {} {}', tmp_img, url, tmp_img, base_img
        )
        return base_img
    ensure_dir(base_img.parent)
    tmp_img.unlink(missing_ok=True)
    log.info('Downloading cloud image {} to {} (showing progress)', url, base_img)
    try:
        run_cmd(
            ['curl', '-fL', '--progress-bar', '-o', str(tmp_img), url],
            check=True,
            capture=False,
        )
        tmp_img.replace(base_img)
    except CmdError:
        tmp_img.unlink(missing_ok=True)
        raise
    log.info('Downloaded cloud image: {}', base_img)
    return base_img


def read_ssh_keys(path: Path) -> list[str]:
    text = path.read_text(encoding='utf-8') if path.exists() else ''
    keys = [
        line.strip()
        for line in text.splitlines()
        if line.strip() and not line.strip().startswith('#')
    ]
    if not keys:
        raise ProvisionError(f'SSH pubkey not readable: {path}')
    bad = [k for k in keys if not k.startswith(SSH_KEY_PREFIXES)]
    if bad:
        raise ProvisionError(
            f'SSH pubkey file {path} does not look like an OpenSSH public key: {bad[0][:40]!r}'
        )
    return keys


def fetch_ssh_key(url: str, dest: Path, *, dry_run: bool = False) -> list[str]:
    """Download an authorized_keys style file and return its keys."""
    if dry_run:
        log.info('DRYRUN: curl -fsSL {} -o {}', url, dest)
        return ['ssh-ed25519 AAAA-dry-run-placeholder dry-run']
    try:
        run_cmd(['curl', '-fsSL', url, '-o', str(dest)], check=True, capture=True)
    except CmdError as ex:
        raise ProvisionError(f'Could not download SSH pubkey from {url}: {ex}') from ex
    return read_ssh_keys(dest)
