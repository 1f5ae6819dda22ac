"""CLI commands for host checks and image caching."""

from __future__ import annotations

import scriptconfig as scfg

from ..host import check_commands, is_proxmox_host
from ..image import fetch_image
from ._common import _BaseCommand, _load_cfg_with_path


class DoctorCLI(_BaseCommand):
    """Check host prerequisites and list missing required tools."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        cls.cli(argv=argv, data=kwargs)
        if not is_proxmox_host():
            print('➖ /etc/pve not found; this does not look like a Proxmox VE node.')
        missing, missing_opt = check_commands()
        if missing:
            print('❌ Missing required commands:', ', '.join(missing))
            return 2
        if missing_opt:
            print('➖ Missing optional commands:', ', '.join(missing_opt))
            print('💡 Without pvesh, name checks and VMID allocation only see this node.')
        print('✅ Required host commands are present.')
        return 0


class ImageFetchCLI(_BaseCommand):
    """Download/cache the configured cloud image."""

    image_url = scfg.Value(None, help='Override Debian 13 cloud image URL.')
    redownload = scfg.Value(
        False, isflag=True, help='Download even if the image is cached.'
    )
    dry_run = scfg.Value(False, isflag=True, help='Print actions without running.')

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg, _ = _resolve_cfg_for_image(args)
        print(str(fetch_image(cfg, dry_run=args.dry_run)))
        return 0


def _resolve_cfg_for_image(args):
    cfg, path = _load_cfg_with_path(args.config)
    if args.image_url:
        cfg.image.url = str(args.image_url).strip()
    if args.redownload:
        cfg.image.redownload = True
    return cfg, path


class HostModalCLI(scfg.ModalCLI):
    """Host preparation and host-level operations."""

    doctor = DoctorCLI
    image_fetch = ImageFetchCLI
