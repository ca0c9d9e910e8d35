"""The declarative intent: which PostgreSQL server should exist on the host."""

import os
import re
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from pgreconcile.core.errors import ConfigurationError
from pgreconcile.platform import default_conf_dir, default_data_dir

GENERATE_PASSWORD = "generate"

_VERSION_RE = re.compile(r"\d+(\.\d+)?")
_ROLE_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_-]*")


class ServerSpec(BaseModel):
    """
    Immutable once reconciliation begins.

    Build instances with :func:`build_server_spec`, which derives the
    platform-dependent path defaults before validation.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    version: str = "9.6"
    setup_repo: bool = True
    data_directory: str
    config_directory: str
    hba_file: str
    ident_file: str
    external_pid_file: str
    # None means "do not manage the password"
    password: Optional[str] = Field(default=GENERATE_PASSWORD, repr=False)
    port: int = Field(default=5432, ge=1, le=65535)
    cookbook: str = "builtin"
    initdb_locale: Optional[str] = None

    ##### Connection preferences #####
    user: str = "postgres"
    database: Optional[str] = None
    host: Optional[str] = None

    @field_validator("version")
    @classmethod
    def _check_version(cls, value: str) -> str:
        if not _VERSION_RE.fullmatch(value or ""):
            raise ValueError(f"not a PostgreSQL version string: {value!r}")
        return value

    @field_validator("data_directory")
    @classmethod
    def _check_data_directory(cls, value: str) -> str:
        if not os.path.isabs(value):
            raise ValueError(f"must be an absolute path: {value!r}")
        return os.path.normpath(value)

    @field_validator("user")
    @classmethod
    def _check_user(cls, value: str) -> str:
        if not _ROLE_RE.fullmatch(value):
            raise ValueError(f"not a valid role name: {value!r}")
        return value

    @property
    def generate_password(self) -> bool:
        return self.password == GENERATE_PASSWORD

    @property
    def manages_password(self) -> bool:
        return self.password is not None


def derive_defaults(values: Mapping[str, Any], family: str) -> Dict[str, Any]:
    """Fill in the path fields that depend on version and platform family."""
    derived = dict(values)
    version = derived.get("version")
    version = ServerSpec.model_fields["version"].default if version is None else str(version)
    derived["version"] = version
    conf_dir = derived.get("config_directory") or default_conf_dir(family, version)
    if not derived.get("data_directory"):
        derived["data_directory"] = default_data_dir(family, version)
    derived["config_directory"] = conf_dir
    if not derived.get("hba_file"):
        derived["hba_file"] = f"{conf_dir}/pg_hba.conf"
    if not derived.get("ident_file"):
        derived["ident_file"] = f"{conf_dir}/pg_ident.conf"
    if not derived.get("external_pid_file"):
        derived["external_pid_file"] = f"/var/run/postgresql/{version}-main.pid"
    return derived


def build_server_spec(values: Mapping[str, Any], family: str) -> ServerSpec:
    """
    Derive defaults for ``family`` and validate.

    Raises:
        ConfigurationError: if any field is invalid
    """
    try:
        return ServerSpec(**derive_defaults(values, family))
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'spec'}: {err['msg']}" for err in e.errors()
        )
        raise ConfigurationError(f"Invalid server spec: {problems}") from e


def load_spec_file(path: str) -> Dict[str, Any]:
    """Read a YAML spec file. The document must be a mapping; an empty file is an empty spec."""
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read spec file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Spec file {path} must contain a mapping, got {type(data).__name__}")
    # Allow the spec to live under a top-level "postgresql" key
    if set(data) == {"postgresql"} and isinstance(data["postgresql"], dict):
        return data["postgresql"]
    return data
