from pgreconcile.steps.base import Step
from pgreconcile.steps.credential_setter import CredentialSetter
from pgreconcile.steps.data_directory import DataDirectoryProvisioner
from pgreconcile.steps.database_initializer import DatabaseInitializer
from pgreconcile.steps.package_installer import PackageInstaller
from pgreconcile.steps.service_reconciler import ServiceReconciler

INSTALL_STEPS = (PackageInstaller,)
CREATE_STEPS = (DataDirectoryProvisioner, DatabaseInitializer, ServiceReconciler, CredentialSetter)

ACTIONS = {
    "install": INSTALL_STEPS,
    "create": CREATE_STEPS,
    "all": INSTALL_STEPS + CREATE_STEPS,
}

__all__ = [
    "ACTIONS",
    "CredentialSetter",
    "DataDirectoryProvisioner",
    "DatabaseInitializer",
    "PackageInstaller",
    "ServiceReconciler",
    "Step",
]
