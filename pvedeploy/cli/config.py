from __future__ import annotations

import sys
from pathlib import Path

import scriptconfig as scfg

from ..config import DeployConfig, dump_toml, save, user_config_path
from ..util import ensure_dir, expand
from ._common import _BaseCommand, _VMOptions, _resolve_cfg


class InitCLI(_BaseCommand):
    """Write a config file populated with the built-in defaults."""

    force = scfg.Value(
        False, isflag=True, help='Overwrite the config file if it already exists.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        path = (
            Path(expand(str(args.config))).resolve()
            if args.config
            else user_config_path()
        )
        if path.exists() and not args.force:
            print(f'Config already exists: {path}', file=sys.stderr)
            print('Use --force to overwrite it.', file=sys.stderr)
            return 2
        ensure_dir(path.parent)
        save(path, DeployConfig())
        print(f'Wrote config: {path}')
        return 0


class ConfigShowCLI(_VMOptions):
    """Show the effective config (file values with CLI options applied)."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg, path = _resolve_cfg(args)
        origin = str(path) if path.exists() else '(built-in defaults)'
        print(f'# Config: {origin}')
        print(dump_toml(cfg), end='')
        return 0


class ConfigModalCLI(scfg.ModalCLI):
    """Config file management."""

    init = InitCLI
    show = ConfigShowCLI
