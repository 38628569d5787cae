"""Authorization gate shared by the log stream and restart endpoints.

Sign-in happens in front of the dashboard (an OAuth proxy performs the
Google sign-in and forwards the verified e-mail in a trusted header). This
module only checks that an identity is present and allow-listed.
"""

import logging
from collections.abc import Iterable

from fastapi import HTTPException, Request

logger = logging.getLogger(__name__)


class AuthorizationGate:
    """FastAPI dependency that resolves and authorizes the caller.

    Attributes:
        identity_header: Header carrying the signed-in identity.
        allowed_identities: Lower-cased allow-list.
    """

    def __init__(self, allowed_identities: Iterable[str], identity_header: str = "X-Forwarded-Email"):
        """Initialize the gate.

        Args:
            allowed_identities: Identities (e-mail addresses) allowed in.
            identity_header: Header carrying the signed-in identity.
        """
        self.identity_header = identity_header
        self.allowed_identities = frozenset(
            identity.strip().lower() for identity in allowed_identities if identity.strip()
        )

    def is_authorized(self, identity: str) -> bool:
        return identity.strip().lower() in self.allowed_identities

    async def __call__(self, request: Request) -> str:
        """Return the caller's identity.

        Raises:
            HTTPException: 401 without an identity, 403 if not allow-listed.
        """
        identity = request.headers.get(self.identity_header, "").strip()
        if not identity:
            raise HTTPException(status_code=401, detail="Unauthorized")

        if not self.is_authorized(identity):
            logger.warning(f"Rejected unauthorized identity {identity} for {request.url.path}")
            raise HTTPException(status_code=403, detail="Forbidden")

        return identity
