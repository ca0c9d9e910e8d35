"""
PyInfra deployment entry point for pgreconcile.

This module provides packaged deploys that can be run individually:
    pyinfra @docker/rockylinux:9 deploy.install_postgresql
    pyinfra inventory.py deploy.install_postgresql_packages
    pyinfra inventory.py deploy.create_postgresql_server

The server spec comes from PGRECONCILE_SPEC_FILE and the inventory's
``postgresql`` host data. The same steps run locally, without pyinfra, with
the ``pgreconcile`` command.
"""

from pgreconcile.deploys.postgresql import (
    create_postgresql_server,
    install_postgresql,
    install_postgresql_packages,
)

__all__ = [
    "install_postgresql",
    "install_postgresql_packages",
    "create_postgresql_server",
]
