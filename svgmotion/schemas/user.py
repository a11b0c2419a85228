"""
用户相关 Schemas
"""
from pydantic import AliasChoices, BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional


class UserRegister(BaseModel):
    """用户注册请求（空字段由服务层校验）"""
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = Field(default=None, max_length=32)

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        cleaned = value.strip()
        if not cleaned:
            return None
        if "<" in cleaned or ">" in cleaned:
            raise ValueError("昵称包含非法字符")
        return cleaned


class UserLogin(BaseModel):
    """用户登录请求"""
    email: Optional[str] = None
    password: Optional[str] = None


class UserResponse(BaseModel):
    """用户信息响应（不含密码哈希）"""
    id: str
    email: str
    name: Optional[str]
    credits: int = Field(validation_alias=AliasChoices("credits", "credit_balance"))
    created_at: datetime

    class Config:
        from_attributes = True


class RegisterResponse(BaseModel):
    message: str = "注册成功"
    user: UserResponse


class LoginResponse(BaseModel):
    message: str = "登录成功"
    user: UserResponse
    token: str


class CurrentUserResponse(BaseModel):
    user: UserResponse
