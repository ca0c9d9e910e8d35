"""Host facts and the platform-specific names derived from them."""

import shlex
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from pgreconcile.core.errors import ProbeError

RHEL_FAMILIES = ("rhel", "fedora", "amazon")
SUPPORTED_FAMILIES = RHEL_FAMILIES + ("debian",)

# os-release ID (or ID_LIKE entry) -> platform family
_FAMILY_BY_ID = {
    "debian": "debian",
    "ubuntu": "debian",
    "linuxmint": "debian",
    "rhel": "rhel",
    "centos": "rhel",
    "rocky": "rhel",
    "almalinux": "rhel",
    "ol": "rhel",
    "fedora": "fedora",
    "amzn": "amazon",
}

PGDG_APT_URL = "https://apt.postgresql.org/pub/repos/apt"
PGDG_APT_KEY_URL = "https://www.postgresql.org/media/keys/ACCC4CF8.asc"
PGDG_APT_KEY_PATH = "/usr/share/keyrings/pgdg.asc"
PGDG_APT_LIST_PATH = "/etc/apt/sources.list.d/pgdg.list"
PGDG_YUM_URL = "https://download.postgresql.org/pub/repos/yum"
PGDG_YUM_KEY_URL = "https://download.postgresql.org/pub/repos/yum/keys/PGDG-RPM-GPG-KEY-RHEL"


@dataclass(frozen=True)
class HostFacts:
    family: str
    distro_id: str
    codename: Optional[str] = None
    major_version: Optional[str] = None


def parse_os_release(content: str) -> Dict[str, str]:
    fields = {}
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        try:
            parts = shlex.split(value)
        except ValueError:
            parts = [value]
        fields[key] = parts[0] if parts else ""
    return fields


def family_from_os_release(fields: Dict[str, str]) -> str:
    candidates = [fields.get("ID", "")] + fields.get("ID_LIKE", "").split()
    for candidate in candidates:
        family = _FAMILY_BY_ID.get(candidate.lower())
        if family:
            return family
    raise ProbeError(f"Unsupported platform: ID={fields.get('ID')!r} ID_LIKE={fields.get('ID_LIKE')!r}")


def host_facts_from_os_release(fields: Dict[str, str]) -> HostFacts:
    version_id = fields.get("VERSION_ID", "")
    return HostFacts(
        family=family_from_os_release(fields),
        distro_id=fields.get("ID", ""),
        codename=fields.get("VERSION_CODENAME") or fields.get("UBUNTU_CODENAME") or None,
        major_version=version_id.split(".")[0] or None,
    )


def probe_platform(os_release_path: str = "/etc/os-release") -> HostFacts:
    """Read the host facts of the machine we are running on."""
    try:
        with open(os_release_path, "r") as f:
            content = f.read()
    except OSError as e:
        raise ProbeError(f"Cannot read {os_release_path}: {e}") from e
    return host_facts_from_os_release(parse_os_release(content))


def _compact(version: str) -> str:
    return version.replace(".", "")


def default_data_dir(family: str, version: str) -> str:
    if family in RHEL_FAMILIES:
        return f"/var/lib/pgsql/{version}/data"
    return f"/var/lib/postgresql/{version}/main"


def default_conf_dir(family: str, version: str) -> str:
    if family in RHEL_FAMILIES:
        return f"/var/lib/pgsql/{version}/data"
    return f"/etc/postgresql/{version}/main"


def platform_service_name(family: str, version: str) -> str:
    if family in RHEL_FAMILIES:
        return f"postgresql-{version}"
    return "postgresql"


def server_package_name(family: str, version: str) -> str:
    if family == "debian":
        return f"postgresql-{version}"
    return f"postgresql{_compact(version)}-server"


def client_package_name(family: str, version: str) -> str:
    if family == "debian":
        return f"postgresql-client-{version}"
    return f"postgresql{_compact(version)}"


def rhel_initdb_command(version: str, data_directory: str, locale: Optional[str] = None) -> Tuple[str, ...]:
    cmd = [f"/usr/pgsql-{version}/bin/initdb"]
    if locale:
        cmd += ["--locale", locale]
    cmd += ["-D", data_directory]
    return tuple(cmd)


@dataclass(frozen=True)
class Repository:
    """A package repository definition: the file that declares it and the signing key."""

    path: str
    content: str
    key_url: str
    key_path: Optional[str] = None


def pgdg_repository(family: str, codename: Optional[str], version: str) -> Repository:
    if family == "debian":
        if not codename:
            raise ProbeError("Cannot configure the apt repository without a release codename")
        line = (
            f"deb [signed-by={PGDG_APT_KEY_PATH}] {PGDG_APT_URL} "
            f"{codename}-pgdg main {version}\n"
        )
        return Repository(path=PGDG_APT_LIST_PATH, content=line, key_url=PGDG_APT_KEY_URL, key_path=PGDG_APT_KEY_PATH)

    tree = "fedora/fedora-$releasever-$basearch" if family == "fedora" else "redhat/rhel-$releasever-$basearch"
    name = f"pgdg{_compact(version)}"
    content = (
        f"[{name}]\n"
        f"name=PostgreSQL {version} $releasever - $basearch\n"
        f"baseurl={PGDG_YUM_URL}/{version}/{tree}\n"
        "enabled=1\n"
        "gpgcheck=1\n"
        f"gpgkey={PGDG_YUM_KEY_URL}\n"
    )
    return Repository(path=f"/etc/yum.repos.d/{name}.repo", content=content, key_url=PGDG_YUM_KEY_URL)


@dataclass(frozen=True)
class PlatformProfile:
    """Read-only facts derived once per run from the ServerSpec and the host."""

    family: str
    codename: Optional[str]
    major_version: Optional[str]
    service_name: str
    server_package: str
    client_package: str
    initdb_command: Tuple[str, ...]

    @classmethod
    def from_spec(cls, spec, facts: HostFacts) -> "PlatformProfile":
        return cls(
            family=facts.family,
            codename=facts.codename,
            major_version=facts.major_version,
            service_name=platform_service_name(facts.family, spec.version),
            server_package=server_package_name(facts.family, spec.version),
            client_package=client_package_name(facts.family, spec.version),
            initdb_command=rhel_initdb_command(spec.version, spec.data_directory, spec.initdb_locale),
        )

    @property
    def initdb_supported(self) -> bool:
        return self.family in RHEL_FAMILIES

    @property
    def renders_unit_override(self) -> bool:
        return self.family in RHEL_FAMILIES

    def unit_override_path(self, override_dir: str) -> str:
        return f"{override_dir.rstrip('/')}/{self.service_name}.service"
