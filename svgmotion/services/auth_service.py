"""
认证服务：注册、登录、令牌校验
"""
import logging
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from svgmotion.exceptions import AuthError, ConflictError, NotFoundError, StorageError, ValidationError
from svgmotion.models.credit import TransactionType
from svgmotion.models.user import User
from svgmotion.repositories.users import UserRepository
from svgmotion.services.credit_service import CreditService
from svgmotion.utils.security import TokenSigner, get_password_hash, user_id_from_claims, verify_password

logger = logging.getLogger(__name__)

REGISTER_GIFT_NOTE = "新用户注册赠送"


class AuthService:
    def __init__(
        self,
        db: AsyncSession,
        signer: TokenSigner,
        credit_service: Optional[CreditService] = None,
        initial_gift_credits: int = 10,
    ):
        self.db = db
        self.signer = signer
        self.users = UserRepository(db)
        self.credits = credit_service or CreditService(db)
        self.initial_gift_credits = initial_gift_credits

    @staticmethod
    def _require_credentials(email: Optional[str], password: Optional[str]) -> str:
        email = (email or "").strip()
        if not email or not password:
            raise ValidationError("邮箱和密码不能为空")
        return email

    async def register(self, email: Optional[str], password: Optional[str], name: Optional[str] = None) -> User:
        """
        注册新用户

        新用户以 0 余额写入，随后在同一事务内通过 CreditService 赠送初始积分，
        保证余额与账本一致。
        """
        email = self._require_credentials(email, password)

        try:
            if await self.users.get_by_email(email):
                raise ConflictError("该邮箱已被注册")

            display_name = (name or "").strip() or email.split("@")[0]
            user = User(
                email=email,
                password_hash=get_password_hash(password),
                name=display_name,
                credit_balance=0,
            )
            await self.users.add(user)
        except IntegrityError as exc:
            await self.db.rollback()
            raise ConflictError("该邮箱已被注册") from exc
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise StorageError() from exc

        balance = await self.credits.adjust(
            user.id,
            self.initial_gift_credits,
            TransactionType.GIFT,
            REGISTER_GIFT_NOTE,
        )
        user.credit_balance = balance
        logger.info("User registered: %s", user.id)
        return user

    async def login(self, email: Optional[str], password: Optional[str]) -> Tuple[User, str]:
        """用户登录，成功后签发 7 天有效的令牌"""
        email = self._require_credentials(email, password)

        try:
            user = await self.users.get_by_email(email)
        except SQLAlchemyError as exc:
            raise StorageError() from exc

        if not user:
            raise NotFoundError("用户不存在", status_code=401)
        if not verify_password(password, user.password_hash):
            raise AuthError("密码错误")

        token = self.signer.issue({"sub": user.id, "email": user.email})
        return user, token

    def verify(self, token: str) -> str:
        """校验令牌并返回用户 ID，无副作用"""
        return user_id_from_claims(self.signer.verify(token))

    async def get_user(self, user_id: str) -> User:
        try:
            user = await self.users.get_by_id(user_id)
        except SQLAlchemyError as exc:
            raise StorageError() from exc
        if not user:
            raise NotFoundError("用户不存在")
        return user
