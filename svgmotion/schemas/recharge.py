"""
充值相关 Schemas
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class PackageResponse(BaseModel):
    """套餐"""
    id: str
    name: str
    credits: int
    price: float
    popular: Optional[bool] = None


class PackageListResponse(BaseModel):
    packages: List[PackageResponse]


class RechargeRequest(BaseModel):
    """兑换套餐请求，兼容前端的 packageId 字段"""
    model_config = ConfigDict(populate_by_name=True)

    package_id: Optional[str] = Field(default=None, alias="packageId")


class RechargeResponse(BaseModel):
    message: str = "充值成功"
    credits: int  # 充值后余额
    added: int
