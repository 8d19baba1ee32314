"""
Inputs collected once at the start of a provisioning run.
"""
import ipaddress
import os
import re
from typing import Optional
from pydantic import BaseModel, SecretStr, ValidationError, field_validator

from ..errors import InputError

_HEX = re.compile(r"^0x[0-9a-fA-F]+$")

def _raise_input_error(e: ValidationError):
    # Only locations and messages; the offending values may be credentials.
    reasons = "; ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
    )
    raise InputError(f"invalid input: {reasons}") from None

def _require(**values: Optional[str]):
    missing = [name.replace("_", " ") for name, value in values.items() if not value or not value.strip()]
    if missing:
        raise InputError(f"missing required input: {', '.join(missing)}")

class Credentials(BaseModel):
    """
    The validator's private key and address.

    The private key is a SecretStr so that reprs and validation errors never
    show it.
    """
    private_key: SecretStr
    address: str

    @field_validator("private_key")
    @classmethod
    def _check_key(cls, value: SecretStr) -> SecretStr:
        raw = value.get_secret_value().strip()
        if not raw:
            raise ValueError("private key must not be empty")
        if not _HEX.match(raw):
            raise ValueError("private key must be 0x-prefixed hex")
        return SecretStr(raw)

    @field_validator("address")
    @classmethod
    def _check_address(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("address must not be empty")
        if not _HEX.match(value):
            raise ValueError(f"address must be 0x-prefixed hex, got {value!r}")
        return value

    @classmethod
    def check(cls, private_key: Optional[str], address: Optional[str]) -> "Credentials":
        """
        Validates raw credentials.

        :raises InputError: If either value is missing or malformed.
        """
        _require(private_key=private_key, address=address)
        try:
            return cls(private_key=private_key, address=address)
        except ValidationError as e:
            _raise_input_error(e)

class ProvisionInputs(Credentials):
    """
    Credentials plus the host facts a provisioning run depends on.
    """
    public_ip: str
    root_dir: str
    secret_path: str

    @field_validator("public_ip")
    @classmethod
    def _check_ip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("public IP must not be empty")
        return str(ipaddress.ip_address(value))

    @field_validator("root_dir", "secret_path")
    @classmethod
    def _absolute(cls, value: str) -> str:
        return os.path.abspath(value)

    @field_validator("root_dir")
    @classmethod
    def _cron_safe(cls, value: str) -> str:
        # The cron line names the task script and log below the root unquoted.
        if any(c.isspace() for c in value):
            raise ValueError(f"provisioning directory must not contain whitespace: {value!r}")
        return value

    @classmethod
    def build(cls, private_key: Optional[str], address: Optional[str],
              public_ip: Optional[str], root_dir: str,
              secret_path: Optional[str] = None) -> "ProvisionInputs":
        """
        Validates raw input values, turning validation failures into InputError.

        :param secret_path: Shared secret file; <root_dir>/jwt/jwt.hex if None.
        :raises InputError: If any value is missing or malformed.
        """
        _require(private_key=private_key, address=address, public_ip=public_ip)
        if secret_path is None:
            secret_path = os.path.join(root_dir, "jwt", "jwt.hex")
        try:
            return cls(
                private_key=private_key,
                address=address,
                public_ip=public_ip,
                root_dir=root_dir,
                secret_path=secret_path,
            )
        except ValidationError as e:
            _raise_input_error(e)
