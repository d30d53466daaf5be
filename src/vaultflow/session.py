"""Delegated signing session.

A Session bundles the relay wallet signer handle with the credential (a JWT
issued by the delegation service) that authorizes it. It is passed
explicitly into every component that needs it; there is no process-wide
"authenticated" flag.

Credentials arriving from outside are verified with CredentialVerifier
(signature, algorithm, audience and expiry) before a Session is built.
"""

import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from authlib.jose import JsonWebKey, JsonWebToken
from authlib.jose.errors import JoseError

from vaultflow.errors import AuthorizationError

logger = logging.getLogger(__name__)

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")

# Abilities the app requests from the delegation service
ABILITY_SWAP = "uniswap-swap"
ABILITY_BRIDGE = "debridge"
ABILITY_TRANSFER = "erc20-transfer"
ABILITY_CONTRACT = "contract-interaction"


@dataclass(frozen=True)
class DelegatedSigner:
    """Handle on the relay wallet that signs on the user's behalf.

    Attributes:
        address: Relay wallet address
        public_key: Optional public key of the delegated key pair
    """
    address: str
    public_key: Optional[str] = None

    def __post_init__(self):
        if not _ADDRESS_RE.match(self.address or ""):
            raise ValueError(f"Invalid relay wallet address: {self.address!r}")


def load_verification_key(raw: str) -> Any:
    """Parse a configured verification key.

    Accepts a JWK or JWK set as JSON, otherwise the raw text (PEM public key
    or HMAC secret) is handed to authlib as is.
    """
    text = raw.strip()
    if not text.startswith("{"):
        return text
    try:
        data = json.loads(text)
    except ValueError as e:
        raise ValueError(f"Credential key is not valid JSON: {e}") from e
    if "keys" in data:
        return JsonWebKey.import_key_set(data)
    return JsonWebKey.import_key(data)


class CredentialVerifier:
    """Verifies delegation JWTs issued for this app.

    Only the configured algorithm is accepted, so unsigned (``alg: none``)
    and algorithm-swapped tokens fail. The ``aud`` claim must equal the app
    id, and ``exp`` and ``pkpAddress`` must be present.
    """

    def __init__(self, key: Optional[str], algorithm: str, audience: str, leeway: int = 0):
        self.key = load_verification_key(key) if key else None
        self.algorithm = algorithm
        self.audience = audience
        self.leeway = leeway
        self._jwt = JsonWebToken([algorithm])

    @classmethod
    def from_settings(cls, settings) -> "CredentialVerifier":
        return cls(
            key=settings.credential_verification_key,
            algorithm=settings.credential_algorithm,
            audience=settings.app_id,
        )

    def verify(self, token: str, now: Optional[float] = None) -> dict:
        """Return the claims of a valid credential.

        Raises:
            AuthorizationError: Bad signature, wrong audience, expired or
                malformed credential, or no verification key configured
        """
        if self.key is None:
            logger.error("Rejecting credential: no verification key configured")
            raise AuthorizationError("Credential verification is not configured")

        claims_options = {
            "aud": {"essential": True, "value": self.audience},
            "exp": {"essential": True},
            "pkpAddress": {"essential": True},
        }
        try:
            claims = self._jwt.decode(token, self.key, claims_options=claims_options)
            claims.validate(now=int(now) if now is not None else None, leeway=self.leeway)
        except JoseError as e:
            logger.warning(f"Credential rejected: {e}")
            raise AuthorizationError(f"Invalid delegation credential: {e.error}") from e
        except ValueError as e:
            logger.warning(f"Credential rejected: {e}")
            raise AuthorizationError("Invalid delegation credential") from e

        return dict(claims)


@dataclass(frozen=True)
class Session:
    """Signer handle plus credential and expiry."""

    signer: DelegatedSigner
    credential: Optional[str]
    expires_at: Optional[float] = None  # unix seconds
    permissions: tuple[str, ...] = field(default_factory=tuple)
    audience: Optional[str] = None

    @classmethod
    def from_jwt(
        cls,
        token: str,
        verifier: CredentialVerifier,
        signer: Optional[DelegatedSigner] = None,
    ) -> "Session":
        """Verify a delegation JWT and build a session from its claims."""
        return cls.from_claims(verifier.verify(token), token, signer=signer)

    @classmethod
    def from_claims(
        cls,
        claims: dict,
        credential: str,
        signer: Optional[DelegatedSigner] = None,
    ) -> "Session":
        """Build a session from already verified credential claims.

        The claims must carry ``pkpAddress`` and a numeric ``exp``. When no
        signer is given, one is built from ``pkpAddress``.
        """
        pkp_address = claims.get("pkpAddress")
        expires_at = claims.get("exp")
        if not pkp_address or expires_at is None:
            raise AuthorizationError("Session credential is missing pkpAddress or exp")

        if isinstance(expires_at, bool):
            raise AuthorizationError("Session credential exp is not a timestamp")
        try:
            expires_at = float(expires_at)
        except (TypeError, ValueError):
            raise AuthorizationError("Session credential exp is not a timestamp")

        permissions = claims.get("permissions")
        if permissions is None:
            permissions = []
        if not isinstance(permissions, list) or not all(isinstance(p, str) for p in permissions):
            raise AuthorizationError("Session credential permissions must be a list of ability names")

        if signer is None:
            try:
                signer = DelegatedSigner(address=str(pkp_address))
            except ValueError as e:
                raise AuthorizationError(str(e))
        elif signer.address.lower() != str(pkp_address).lower():
            raise AuthorizationError(
                f"Credential was issued for {pkp_address}, not relay wallet {signer.address}"
            )

        return cls(
            signer=signer,
            credential=credential,
            expires_at=expires_at,
            permissions=tuple(permissions),
            audience=claims.get("aud"),
        )

    @property
    def relay_address(self) -> str:
        return self.signer.address

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now if now is not None else time.time()) >= self.expires_at

    def ensure_valid(self, now: Optional[float] = None) -> None:
        """Refuse to start a flow without a live credential.

        Raises:
            AuthorizationError: If the credential is missing or expired
        """
        if not self.credential:
            raise AuthorizationError("Delegation credential required. Authorize the app first.")
        if self.is_expired(now):
            raise AuthorizationError("Delegation credential has expired. Re-authorize the app.")

    def require_ability(self, ability: str) -> None:
        """Check that the credential grants an ability.

        Credentials that list no permissions are not restricted here; the
        delegation service still enforces its own policy.
        """
        if self.permissions and ability not in self.permissions:
            logger.warning(f"Ability {ability} not granted to {self.relay_address}")
            raise AuthorizationError(
                f"Relay wallet {self.relay_address} is not permitted to use {ability}",
                ability=ability,
            )
