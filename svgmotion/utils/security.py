"""
安全相关工具：JWT、密码哈希
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
import secrets
import logging
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from svgmotion.config import Settings
from svgmotion.exceptions import AuthError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
security = HTTPBearer(auto_error=False)
logger = logging.getLogger(__name__)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """验证密码"""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """生成密码哈希"""
    return pwd_context.hash(password)


class TokenSigner:
    """
    令牌签发与校验

    令牌不落库，有效性完全由签名和过期时间决定（无吊销列表）。
    """

    def __init__(self, secret_key: str, algorithm: str = "HS256", default_ttl: Optional[timedelta] = None):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.default_ttl = default_ttl or timedelta(days=7)

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenSigner":
        return cls(
            settings.jwt_secret_key,
            settings.jwt_algorithm,
            timedelta(minutes=settings.jwt_access_token_expire_minutes),
        )

    def issue(self, claims: dict, ttl: Optional[timedelta] = None) -> str:
        """创建 JWT Token"""
        to_encode = claims.copy()
        if "jti" not in to_encode:
            to_encode["jti"] = secrets.token_urlsafe(16)
        now = datetime.now(timezone.utc)
        to_encode.update({"iat": now, "exp": now + (ttl or self.default_ttl)})
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def verify(self, token: str) -> dict[str, Any]:
        """解码并校验 JWT Token"""
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise AuthError("认证令牌已过期")
        except JWTError:
            raise AuthError("无效的认证令牌")


def get_signer(request: Request) -> TokenSigner:
    return request.app.state.signer


def get_token_from_credentials(
    credentials: Optional[HTTPAuthorizationCredentials],
) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return None


def user_id_from_claims(payload: dict) -> str:
    user_id = payload.get("sub")
    if not user_id or not isinstance(user_id, str):
        raise AuthError("无效的认证令牌")
    return user_id


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    signer: TokenSigner = Depends(get_signer),
) -> str:
    """获取当前登录用户 ID（必须登录）"""
    token = get_token_from_credentials(credentials)
    if not token:
        raise AuthError("未登录")
    return user_id_from_claims(signer.verify(token))


async def get_optional_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    signer: TokenSigner = Depends(get_signer),
) -> Optional[str]:
    """获取当前用户 ID（可选，令牌缺失或无效时视为匿名）"""
    token = get_token_from_credentials(credentials)
    if not token:
        return None
    try:
        return user_id_from_claims(signer.verify(token))
    except AuthError as exc:
        logger.info("Ignoring invalid bearer token on optional auth: %s", exc.message)
        return None
