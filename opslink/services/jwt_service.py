"""
OpsLink Hosting - JWT Service
Token creation and verification
"""
from datetime import datetime, timedelta
from typing import Dict, Optional

import jwt

from opslink.config import Settings
from opslink.errors import AuthenticationError


class JWTService:

    def __init__(self, settings: Settings):
        self.secret = settings.JWT_SECRET
        self.algorithm = settings.JWT_ALGORITHM
        self.expire_minutes = settings.JWT_EXPIRE_MINUTES
        self.guest_expire_minutes = settings.GUEST_TOKEN_EXPIRE_MINUTES

    def create_access_token(self, user_id: str, expires_delta: Optional[timedelta] = None) -> str:
        """Create a JWT access token"""
        now = datetime.utcnow()
        expire = now + (expires_delta or timedelta(minutes=self.expire_minutes))
        payload = {"sub": user_id, "exp": expire, "iat": now, "type": "access"}
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def create_guest_token(self, user_id: str) -> str:
        return self.create_access_token(user_id, timedelta(minutes=self.guest_expire_minutes))

    def verify_token(self, token: str) -> Dict:
        """Verify and decode a JWT token"""
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError:
            raise AuthenticationError("Invalid token")
        if not payload.get("sub"):
            raise AuthenticationError("Invalid token")
        return payload
