# ============================================================
# security.py — Contrôle admin et nonce anti-rejeu
# ------------------------------------------------------------
#  - AdminGuard : jeton admin (Authorization: Bearer ... ou
#    X-Admin-Token) comparé en temps constant
#  - NonceSigner : jeton HMAC-SHA256 lié à la session et à
#    l'heure d'émission, valable NONCE_TTL secondes
# ============================================================
import hashlib
import hmac
import time
from typing import Iterable, Optional

from errors import Forbidden, InvalidNonce

CHECK_ACTION = "check_availability"


class AdminGuard:
    def __init__(self, tokens: Iterable[str]):
        self.tokens = tuple(t for t in tokens if t)

    @staticmethod
    def extract(authorization: Optional[str], admin_token: Optional[str]) -> str:
        if authorization and authorization.lower().startswith("bearer "):
            return authorization[7:].strip()
        return (admin_token or "").strip()

    def is_admin(self, token: str) -> bool:
        if not token:
            return False
        # on compare avec chaque jeton, sans court-circuit
        matched = False
        for expected in self.tokens:
            if hmac.compare_digest(token.encode(), expected.encode()):
                matched = True
        return matched

    def require(self, authorization: Optional[str], admin_token: Optional[str]) -> None:
        if not self.is_admin(self.extract(authorization, admin_token)):
            raise Forbidden("Sorry, you are not allowed to manage availability codes.")


class NonceSigner:
    def __init__(self, secret: str, ttl: int, clock=time.time):
        self.secret = secret.encode()
        self.ttl = ttl
        self._clock = clock

    def _sign(self, action: str, session_id: str, issued: int) -> str:
        data = f"{action}|{session_id}|{issued}".encode()
        return hmac.new(self.secret, data, hashlib.sha256).hexdigest()

    def issue(self, session_id: str, action: str = CHECK_ACTION) -> str:
        issued = int(self._clock())
        return f"{issued}.{self._sign(action, session_id, issued)}"

    def verify(self, token: Optional[str], session_id: Optional[str], action: str = CHECK_ACTION) -> None:
        if not token or not session_id:
            raise InvalidNonce("Security token is missing.")
        issued_raw, _, signature = token.partition(".")
        try:
            issued = int(issued_raw)
        except ValueError:
            raise InvalidNonce("Security token is invalid.")
        expected = self._sign(action, session_id, issued)
        if not hmac.compare_digest(signature.encode(), expected.encode()):
            raise InvalidNonce("Security token is invalid.")
        age = self._clock() - issued
        # tolérance d'horloge : 60s dans le futur
        if age > self.ttl or age < -60:
            raise InvalidNonce("Security token has expired.")
