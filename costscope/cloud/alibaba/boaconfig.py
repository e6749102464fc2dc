"""Alibaba Billing and Account (BOA) connection configuration.

A :class:`BOAConfiguration` pairs an account and region with an
:class:`~costscope.cloud.provider.Authorizer`. Authorizers serialise with a
discriminator (``authorizerType``; ``Type`` is accepted on input) so that
new credential kinds can be added without changing the configuration
document.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from costscope.cloud.provider import AUTHORIZER_TYPE_PROPERTY, REDACTED, Authorizer, Config, ConfigError

ALIBABA_PROVIDER = "Alibaba"
ACCESS_KEY_AUTHORIZER_TYPE = "AccessKey"

_LEGACY_TYPE_PROPERTY = "Type"


# ---------------------------------------------------------------------------
# Authorizers
# ---------------------------------------------------------------------------


@dataclass
class AccessKey(Authorizer):
    """RAM user access key pair."""

    access_key_id: str = ""
    access_key_secret: str = field(default="", repr=False)

    authorizer_type = ACCESS_KEY_AUTHORIZER_TYPE

    def validate(self) -> None:
        if not self.access_key_id:
            raise ConfigError("AccessKey: missing Access key ID")
        if not self.access_key_secret:
            raise ConfigError("AccessKey: missing Access Key secret")

    def equals(self, other: object) -> bool:
        if not isinstance(other, AccessKey):
            return False
        return self.access_key_id == other.access_key_id and self.access_key_secret == other.access_key_secret

    def sanitize(self) -> AccessKey:
        return AccessKey(access_key_id=self.access_key_id, access_key_secret=REDACTED)

    def to_dict(self) -> dict[str, Any]:
        return {
            AUTHORIZER_TYPE_PROPERTY: self.authorizer_type,
            "accessKeyID": self.access_key_id,
            "accessKeySecret": self.access_key_secret,
        }

    def get_credentials(self) -> tuple[str, str]:
        """Return ``(id, secret)`` after validating the pair."""
        self.validate()
        return self.access_key_id, self.access_key_secret


_AUTHORIZERS: dict[str, type[Authorizer]] = {
    ACCESS_KEY_AUTHORIZER_TYPE: AccessKey,
}


def select_authorizer_by_type(type_str: str) -> Authorizer:
    """Return an empty authorizer for the discriminator *type_str*.

    Raises:
        ConfigError: for an empty or unknown discriminator.
    """
    cls = _AUTHORIZERS.get(type_str)
    if cls is None:
        raise ConfigError(f"alibaba: provider authorizer type '{type_str}' is not valid")
    return cls()


def authorizer_from_dict(data: dict[str, Any]) -> Authorizer:
    """Build an authorizer from its serialised form."""
    type_str = data.get(AUTHORIZER_TYPE_PROPERTY) or data.get(_LEGACY_TYPE_PROPERTY) or ""
    authorizer = select_authorizer_by_type(str(type_str))
    if isinstance(authorizer, AccessKey):
        authorizer.access_key_id = str(data.get("accessKeyID", ""))
        authorizer.access_key_secret = str(data.get("accessKeySecret", ""))
    return authorizer


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass
class BOAConfiguration(Config):
    """Connection settings for the Alibaba billing API."""

    account: str = ""
    region: str = ""
    authorizer: Authorizer | None = None

    def validate(self) -> None:
        if self.authorizer is None:
            raise ConfigError("BOAConfiguration: missing authorizer")
        self.authorizer.validate()
        if not self.account:
            raise ConfigError("BOAConfiguration: missing account")
        if not self.region:
            raise ConfigError("BOAConfiguration: missing region")

    def equals(self, other: object) -> bool:
        if not isinstance(other, BOAConfiguration):
            return False
        if self.authorizer is None or other.authorizer is None:
            if self.authorizer is not other.authorizer:
                return False
        elif not self.authorizer.equals(other.authorizer):
            return False
        return self.account == other.account and self.region == other.region

    def sanitize(self) -> BOAConfiguration:
        return BOAConfiguration(
            account=self.account,
            region=self.region,
            authorizer=self.authorizer.sanitize() if self.authorizer is not None else None,
        )

    def key(self) -> str:
        return f"{self.account}/{self.region}"

    def provider(self) -> str:
        return ALIBABA_PROVIDER

    def to_dict(self) -> dict[str, Any]:
        return {
            "Account": self.account,
            "Region": self.region,
            "Authorizer": self.authorizer.to_dict() if self.authorizer is not None else None,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BOAConfiguration:
        """Build a configuration from its serialised form.

        Raises:
            ConfigError: if the authorizer discriminator is unknown.
        """
        raw_authorizer = data.get("Authorizer")
        authorizer = None
        if raw_authorizer:
            if not isinstance(raw_authorizer, dict):
                raise ConfigError("BOAConfiguration: Authorizer must be an object")
            authorizer = authorizer_from_dict(raw_authorizer)
        return cls(
            account=str(data.get("Account", "")),
            region=str(data.get("Region", "")),
            authorizer=authorizer,
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> BOAConfiguration:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ConfigError("BOAConfiguration: invalid JSON") from exc
        if not isinstance(data, dict):
            raise ConfigError("BOAConfiguration: expected a JSON object")
        return cls.from_dict(data)


@dataclass(frozen=True)
class AlibabaInfo:
    """Alibaba settings as they appear in the custom pricing document."""

    alibaba_cluster_region: str = ""
    alibaba_service_key_name: str = ""
    alibaba_service_key_secret: str = field(default="", repr=False)
    alibaba_account_id: str = ""

    def is_empty(self) -> bool:
        return not (self.alibaba_cluster_region or self.alibaba_service_key_name or self.alibaba_service_key_secret)


def convert_alibaba_info_to_config(info: AlibabaInfo) -> BOAConfiguration:
    return BOAConfiguration(
        account=info.alibaba_account_id,
        region=info.alibaba_cluster_region,
        authorizer=AccessKey(
            access_key_id=info.alibaba_service_key_name,
            access_key_secret=info.alibaba_service_key_secret,
        ),
    )
