"""Credentials used by generated clients.

Both metadata plugins are wrapped with ``grpc.metadata_call_credentials`` and
only take effect on channels with transport security.
"""

from __future__ import annotations

import json
import time
from typing import Any, Dict, Optional, Union

import grpc
import jwt
from cryptography import x509
from cryptography.x509.oid import NameOID

# Canonical spellings of OAuth2 token types; anything else is sent as given.
_TOKEN_TYPES = {
    "bearer": "Bearer",
    "mac": "MAC",
    "basic": "Basic",
}

DEFAULT_JWT_LIFETIME = 3600


def token_type(name: str) -> str:
    if not name:
        return "Bearer"
    return _TOKEN_TYPES.get(name.lower(), name)


class TokenAuth(grpc.AuthMetadataPlugin):
    """Sends ``authorization: <type> <token>`` with every call."""

    def __init__(self, token: str, kind: str = "Bearer"):
        self._header = f"{token_type(kind)} {token}"

    def __call__(self, context, callback):
        callback((("authorization", self._header),), None)


class JWTAccess(grpc.AuthMetadataPlugin):
    """Self-signed JWT access from a Google service account key.

    Each call is authorized with a short-lived token whose audience is the
    URL of the service being called.
    """

    def __init__(
        self,
        email: str,
        private_key: str,
        key_id: Optional[str] = None,
        lifetime: int = DEFAULT_JWT_LIFETIME,
    ):
        self._email = email
        self._private_key = private_key
        self._key_id = key_id
        self._lifetime = lifetime

    @classmethod
    def from_key(cls, key: Union[str, bytes]) -> JWTAccess:
        """Build from the JSON content of a service account key."""
        try:
            info: Dict[str, Any] = json.loads(key)
        except json.JSONDecodeError as e:
            raise ValueError(f"jwt key: {e}") from e
        if not isinstance(info, dict):
            raise ValueError("jwt key: expected a JSON object")
        missing = [k for k in ("client_email", "private_key") if not info.get(k)]
        if missing:
            raise ValueError(f"jwt key: missing {', '.join(missing)}")
        return cls(info["client_email"], info["private_key"], info.get("private_key_id"))

    @classmethod
    def from_file(cls, path: str) -> JWTAccess:
        with open(path, "rb") as f:
            return cls.from_key(f.read())

    def token(self, audience: str, now: Optional[int] = None) -> str:
        issued = int(time.time()) if now is None else now
        claims = {
            "iss": self._email,
            "sub": self._email,
            "aud": audience,
            "iat": issued,
            "exp": issued + self._lifetime,
        }
        headers = {"kid": self._key_id} if self._key_id else None
        return jwt.encode(claims, self._private_key, algorithm="RS256", headers=headers)

    def __call__(self, context, callback):
        try:
            token = self.token(context.service_url)
        except (jwt.PyJWTError, ValueError) as e:
            callback((), e)
            return
        callback((("authorization", f"Bearer {token}"),), None)


def certificate_name(pem: bytes) -> str:
    """Return a host name the PEM certificate is valid for.

    The first DNS subject alternative name wins, then the subject common
    name. A wildcard name is returned with its ``*`` label filled in.
    """
    try:
        cert = x509.load_pem_x509_certificate(pem)
    except ValueError as e:
        raise ValueError(f"server certificate: {e}") from e
    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
        names = san.value.get_values_for_type(x509.DNSName)
    except x509.ExtensionNotFound:
        names = []
    if not names:
        names = [a.value for a in cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)]
    if not names:
        raise ValueError("server certificate names no host")
    name = names[0]
    if name.startswith("*."):
        name = "x" + name[1:]
    return name
