"""CLI commands for deploying VMs and previewing their name, VMID and user-data."""

from __future__ import annotations

import sys
import tempfile
from pathlib import Path

import scriptconfig as scfg
import ubelt as ub

from .. import pve
from ..cloudinit import build_user_data, render_user_data
from ..config import validate
from ..image import fetch_ssh_key, read_ssh_keys
from ..provision import deploy
from ._common import _BaseCommand, _VMOptions, _resolve_cfg, log


class DeployCLI(_VMOptions):
    """Download the cloud image, create the VM, attach cloud-init and boot it."""

    vmid = scfg.Value(
        None, type=int, help='Use this VMID instead of allocating the next free one.'
    )
    redownload = scfg.Value(
        False, isflag=True, help='Download the cloud image even if it is cached.'
    )
    keep_on_failure = scfg.Value(
        False,
        isflag=True,
        help='Do not destroy a partially created VM when a later step fails.',
    )
    dry_run = scfg.Value(
        False, isflag=True, help='Print actions without running.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg, _ = _resolve_cfg(args)
        if args.redownload:
            cfg.image.redownload = True
        result = deploy(
            cfg,
            dry_run=bool(args.dry_run),
            keep_on_failure=bool(args.keep_on_failure),
            vmid=args.vmid,
        )
        log.debug('Provision result: {}', result.as_dict())
        prefix = 'DRYRUN: would deploy' if result.dry_run else 'Deployed'
        print(f'{prefix} VM {result.name} (ID {result.vmid})')
        if result.snippet:
            print(f'  user-data: {result.snippet}')
        return 0


class RenderCLI(_VMOptions):
    """Print the cloud-init user-data a deploy would write."""

    ssh_key_file = scfg.Value(
        None, help='Read SSH public keys from this file instead of --ssh_key_url.'
    )
    output = scfg.Value(None, help='Write the user-data here instead of stdout.')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg, _ = _resolve_cfg(args)
        validate(cfg)
        name = cfg.name
        if args.ssh_key_file:
            keys = read_ssh_keys(Path(args.ssh_key_file).expanduser())
        else:
            with tempfile.TemporaryDirectory(prefix='pvedeploy-') as tmpdir:
                keys = fetch_ssh_key(
                    cfg.cloud_init.ssh_key_url, Path(tmpdir) / f'{name}.pub'
                )
        text = render_user_data(build_user_data(cfg, name, keys))
        if args.output:
            Path(args.output).write_text(text, encoding='utf-8')
            log.info('Wrote user-data to {}', args.output)
        elif sys.stdout.isatty():
            print(ub.highlight_code(text, lexer_name='yaml'))
        else:
            print(text, end='')
        return 0


class NameCLI(_VMOptions):
    """Print the VM name the given identity options produce."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg, _ = _resolve_cfg(args)
        print(cfg.name)
        return 0


class NextIdCLI(_BaseCommand):
    """Print the VMID the next deploy would be given."""

    start = scfg.Value(
        None,
        type=int,
        help='Scan for the first free VMID from here instead of asking the cluster.',
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        print(pve.next_vmid(start=args.start))
        return 0
