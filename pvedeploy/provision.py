"""Provisioning runner: image to running Proxmox VM with cloud-init attached."""

from __future__ import annotations

import contextlib
import tempfile
from pathlib import Path

from loguru import logger

from . import pve
from .cloudinit import build_user_data, render_user_data, snippet_volume, write_snippet
from .config import DeployConfig, validate
from .errors import NameConflictError, ProvisionError
from .host import check_commands
from .image import fetch_image, fetch_ssh_key
from .results import ProvisionResult
from .runtime import ipconfig0_value, net0_value, qm_cmd
from .util import CmdError, run_cmd, shell_join

log = logger


class Provisioner:
    """Run every deploy step in order, rolling back a half-created VM on failure."""

    def __init__(
        self,
        cfg: DeployConfig,
        *,
        dry_run: bool = False,
        keep_on_failure: bool = False,
        vmid: int | None = None,
        ssh_keys: list[str] | None = None,
    ):
        self.cfg = cfg
        self.dry_run = dry_run
        self.keep_on_failure = keep_on_failure
        self.requested_vmid = vmid
        self.ssh_keys = ssh_keys
        self.created = False
        self.result: ProvisionResult | None = None

    @contextlib.contextmanager
    def _step(self, label: str):
        log.info('==> {}', label)
        yield
        assert self.result is not None
        self.result.steps.append(label)

    def _qm(self, *args: object) -> None:
        cmd = qm_cmd(*args)
        if self.dry_run:
            log.info('DRYRUN: {}', shell_join(cmd))
            return
        run_cmd(cmd, check=True, capture=True)

    def _preflight(self) -> None:
        validate(self.cfg)
        if self.dry_run:
            return
        missing, missing_opt = check_commands()
        if missing:
            raise ProvisionError(f'Missing: {", ".join(missing)}')
        if missing_opt:
            log.debug('Optional commands missing: {}', ', '.join(missing_opt))

    def _allocate_vmid(self, name: str) -> int:
        if pve.name_exists(name):
            raise NameConflictError(f'A VM/CT with name {name} already exists')
        if self.requested_vmid is not None:
            vmid = int(self.requested_vmid)
            if pve.vmid_taken(vmid):
                raise NameConflictError(f'VMID {vmid} is already in use')
            return vmid
        return pve.next_vmid()

    def run(self) -> ProvisionResult:
        self._preflight()
        cfg = self.cfg
        name = cfg.name
        self.result = ProvisionResult(name=name, dry_run=self.dry_run)
        with tempfile.TemporaryDirectory(prefix='pvedeploy-') as tmpdir:
            key_file = Path(tmpdir) / f'{name}.pub'
            with self._step('Fetch SSH public key'):
                if self.ssh_keys:
                    keys = list(self.ssh_keys)
                    key_file.write_text('\n'.join(keys) + '\n', encoding='utf-8')
                else:
                    keys = fetch_ssh_key(
                        cfg.cloud_init.ssh_key_url, key_file, dry_run=self.dry_run
                    )
            with self._step('Check name and allocate VMID'):
                vmid = self._allocate_vmid(name)
                self.result.vmid = vmid
                log.info('Using VMID {} for {}', vmid, name)
            with self._step('Fetch cloud image'):
                img = fetch_image(cfg, dry_run=self.dry_run)
            with self._step('Create VM'):
                self._qm(
                    'create',
                    vmid,
                    '--name',
                    name,
                    '--memory',
                    cfg.vm.ram_mb,
                    '--cores',
                    cfg.vm.cpus,
                    '--net0',
                    net0_value(cfg.network.bridge),
                )
                self.created = not self.dry_run
            try:
                self._configure(vmid, name, img, key_file, keys)
            except BaseException as ex:
                # Includes KeyboardInterrupt during a long importdisk.
                self._rollback(vmid, ex)
                raise
        log.info('Done. VM {} (ID {}) is booting with cloud-init.', name, vmid)
        return self.result

    def _configure(
        self, vmid: int, name: str, img: Path, key_file: Path, keys: list[str]
    ) -> None:
        cfg = self.cfg
        assert self.result is not None
        self._qm('set', vmid, '--scsihw', 'virtio-scsi-pci')
        with self._step('Import disk'):
            self.result.volid = self._import_disk(vmid, img)
        with self._step('Attach devices'):
            self._qm('set', vmid, '--scsi0', self.result.volid)
            self._qm('set', vmid, '--ide2', f'{cfg.storage.storage}:cloudinit')
            self._qm('set', vmid, '--boot', 'c', '--bootdisk', 'scsi0')
            self._qm('set', vmid, '--serial0', 'socket', '--vga', 'serial0')
            self._qm('set', vmid, '--agent', 'enabled=1')
        with self._step('Resize disk'):
            self._resize(vmid)
        with self._step('Configure network'):
            self._qm(
                'set', vmid, '--net0', net0_value(cfg.network.bridge, cfg.network.vlan)
            )
            self._qm(
                'set',
                vmid,
                '--ipconfig0',
                ipconfig0_value(
                    dhcp=cfg.network.dhcp,
                    ip_cidr=cfg.network.ip_cidr,
                    gateway=cfg.network.gateway,
                ),
            )
            if cfg.network.dns:
                self._qm('set', vmid, '--nameserver', cfg.network.dns)
            if cfg.network.search_domain:
                self._qm('set', vmid, '--searchdomain', cfg.network.search_domain)
        with self._step('Configure cloud-init user'):
            self._qm('set', vmid, '--ciuser', cfg.cloud_init.user)
            self._qm('set', vmid, '--sshkey', key_file)
        with self._step('Write cloud-init snippet'):
            text = render_user_data(build_user_data(cfg, name, keys))
            self.result.user_data = text
            path = write_snippet(cfg, name, text, dry_run=self.dry_run)
            self.result.snippet = str(path)
            self._qm('set', vmid, '--cicustom', f'user={snippet_volume(cfg, path)}')
        with self._step('Start VM'):
            log.info('Starting VM {} ({})...', vmid, name)
            self._qm('start', vmid)
            if not self.dry_run:
                log.info('VM {} status: {}', vmid, pve.vm_status(vmid) or 'unknown')

    def _import_disk(self, vmid: int, img: Path) -> str:
        storage = self.cfg.storage.storage
        cmd = qm_cmd('importdisk', vmid, img, storage, '--format', 'qcow2')
        if self.dry_run:
            log.info('DRYRUN: {}', shell_join(cmd))
            return f'{storage}:vm-{vmid}-disk-0'
        res = run_cmd(cmd, check=False, capture=True)
        import_log = (res.stdout + res.stderr).strip()
        log.debug('Import log:\n{}', import_log)
        if res.code != 0:
            raise ProvisionError(
                f'qm importdisk failed (code={res.code})\nImport-Log:\n{import_log}'
            )
        volid = pve.find_imported_volid(storage, vmid)
        if not volid:
            raise ProvisionError(
                f'Could not determine volid after importdisk\nImport-Log:\n{import_log}'
            )
        log.info('Imported disk volume: {}', volid)
        return volid

    def _resize(self, vmid: int) -> None:
        cmd = qm_cmd('resize', vmid, 'scsi0', self.cfg.vm.disk)
        if self.dry_run:
            log.info('DRYRUN: {}', shell_join(cmd))
            return
        res = run_cmd(cmd, check=False, capture=True)
        if res.code != 0:
            # Shrinking or resizing to the current size fails; the VM is still usable.
            log.warning(
                'qm resize to {} failed (code={}): {}',
                self.cfg.vm.disk,
                res.code,
                res.stderr.strip() or '(no stderr)',
            )

    def _rollback(self, vmid: int, ex: BaseException) -> None:
        assert self.result is not None
        if not self.created:
            return
        reason = str(ex) or type(ex).__name__
        if self.keep_on_failure:
            log.warning(
                'Provisioning failed ({}); keeping partially created VM {} for inspection',
                reason,
                vmid,
            )
            return
        log.warning(
            'Provisioning failed ({}); removing partially created VM {}', reason, vmid
        )
        try:
            pve.destroy_vm(vmid)
        except CmdError as cleanup_ex:
            log.error('Rollback of VM {} failed: {}', vmid, cleanup_ex)
            return
        if self.result.snippet:
            Path(self.result.snippet).unlink(missing_ok=True)
        self.result.rolled_back = True


def deploy(
    cfg: DeployConfig,
    *,
    dry_run: bool = False,
    keep_on_failure: bool = False,
    vmid: int | None = None,
    ssh_keys: list[str] | None = None,
) -> ProvisionResult:
    return Provisioner(
        cfg,
        dry_run=dry_run,
        keep_on_failure=keep_on_failure,
        vmid=vmid,
        ssh_keys=ssh_keys,
    ).run()
