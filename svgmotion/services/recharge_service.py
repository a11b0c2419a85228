"""
充值服务（模拟支付）

套餐目录是静态的；套餐有效即直接到账，不接入真实支付渠道。
"""
from dataclasses import asdict, dataclass
from typing import List, Optional, Tuple

from svgmotion.exceptions import ValidationError
from svgmotion.models.credit import TransactionType
from svgmotion.services.credit_service import CreditService


@dataclass(frozen=True)
class Package:
    id: str
    name: str
    credits: int
    price: float
    popular: bool = False

    def to_dict(self) -> dict:
        data = asdict(self)
        if not self.popular:
            data.pop("popular")
        return data


PACKAGES: Tuple[Package, ...] = (
    Package(id="basic", name="基础套餐", credits=10, price=9.9),
    Package(id="standard", name="标准套餐", credits=50, price=39.9, popular=True),
    Package(id="premium", name="高级套餐", credits=200, price=99.9),
)


def list_packages() -> List[Package]:
    return list(PACKAGES)


def find_package(package_id: Optional[str]) -> Optional[Package]:
    for package in PACKAGES:
        if package.id == package_id:
            return package
    return None


class RechargeService:
    def __init__(self, credit_service: CreditService):
        self.credits = credit_service

    async def redeem(self, user_id: str, package_id: Optional[str]) -> Tuple[int, int]:
        """
        兑换套餐

        Returns:
            (新余额, 本次增加的积分)
        """
        package = find_package(package_id)
        if not package:
            raise ValidationError("无效的充值套餐")

        balance = await self.credits.adjust(
            user_id,
            package.credits,
            TransactionType.RECHARGE,
            f"充值 {package.credits} 积分，支付 ¥{package.price}",
        )
        return balance, package.credits
