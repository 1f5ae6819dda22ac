"""Top-level modal CLI wiring, argv normalization, and logging setup."""

from __future__ import annotations

import os
import sys

import scriptconfig as scfg
from loguru import logger

from ._common import _load_cfg_with_path, log
from .config import ConfigModalCLI
from .deploy import DeployCLI, NameCLI, NextIdCLI, RenderCLI
from .host import HostModalCLI


class PVEDeployModalCLI(scfg.ModalCLI):
    """Provision cloud-init VMs on a Proxmox VE host."""

    deploy = DeployCLI
    render = RenderCLI
    vmname = NameCLI
    nextid = NextIdCLI
    host = HostModalCLI
    config = ConfigModalCLI


def main(argv: list[str] | None = None) -> None:
    verbosity = 1
    if argv is None:
        argv = sys.argv[1:]
    argv = _normalize_argv(argv)
    config_value = _config_arg(argv)
    try:
        cfg, _ = _load_cfg_with_path(config_value)
        verbosity = cfg.verbosity
    except Exception:
        verbosity = 1

    explicit_verbose = _count_verbose(argv)
    _setup_logging(explicit_verbose, verbosity)

    try:
        rc = PVEDeployModalCLI.main(argv=argv, _noexit=True)
    except Exception as ex:
        print(f'ERROR: {ex}', file=sys.stderr)
        log.error('Unhandled pvedeploy error: {}', ex)
        sys.exit(2)

    if any(flag in argv for flag in ('-h', '--help')):
        sys.exit(0)
    if isinstance(rc, int):
        sys.exit(rc)
    sys.exit(0)


def _setup_logging(args_verbose: int, cfg_verbosity: int) -> None:
    logger.remove()
    effective_verbosity = args_verbose if args_verbose > 0 else cfg_verbosity
    level = 'WARNING'
    if effective_verbosity == 1:
        level = 'INFO'
    elif effective_verbosity >= 2:
        level = 'DEBUG'
    colorize = sys.stderr.isatty() and os.getenv('NO_COLOR') is None
    logger.add(
        sys.stderr,
        level=level,
        colorize=colorize,
        format='<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>',
    )
    log.debug(
        'Logging configured at {} (effective_verbosity={}, colorize={})',
        level,
        effective_verbosity,
        colorize,
    )


def _normalize_argv(argv: list[str]) -> list[str]:
    """Accept the shell-style hyphenated option spellings (--snippets-storage)."""
    out: list[str] = []
    for item in argv:
        if item.startswith('--') and len(item) > 2:
            key, sep, value = item[2:].partition('=')
            item = '--' + key.replace('-', '_') + sep + value
        out.append(item)
    if out and out[0] in {'next-id', 'next_id'}:
        out[0] = 'nextid'
    if len(out) >= 2 and out[0] == 'host' and out[1] == 'image-fetch':
        out[1] = 'image_fetch'
    return out


def _config_arg(argv: list[str]) -> str | None:
    """Find the --config value in either the `--config X` or `--config=X` form."""
    for i, item in enumerate(argv):
        if item == '--config':
            return argv[i + 1] if i + 1 < len(argv) else None
        if item.startswith('--config='):
            return item.partition('=')[2]
    return None


def _count_verbose(argv: list[str]) -> int:
    count = 0
    for item in argv:
        if item == '--verbose':
            count += 1
        elif item.startswith('-') and not item.startswith('--'):
            short = item[1:]
            if short and set(short) <= {'v'}:
                count += len(short)
    return count
