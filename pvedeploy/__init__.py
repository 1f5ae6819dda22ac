"""Proxmox VE cloud-image VM provisioning."""

__version__ = '0.1.0'
