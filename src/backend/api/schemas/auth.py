"""Authentication form schemas."""

from typing import Literal, Optional

from pydantic import EmailStr, Field, ValidationInfo, field_validator

from core.schema_base import HTTPSchemaModel
from db.enums import VerificationType


def _matches_password(v: str, info: ValidationInfo) -> str:
    if info.data.get("password") is not None and v != info.data["password"]:
        raise ValueError("The passwords must match")
    return v


class LoginForm(HTTPSchemaModel):
    """`username` accepts either the username or the email address."""

    username: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=100)
    remember: bool = False
    redirect_to: Optional[str] = None

    @field_validator("username")
    @classmethod
    def normalize_username(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("remember", mode="before")
    @classmethod
    def checkbox(cls, v):
        # unchecked boxes are not submitted, checked ones send "on"
        if isinstance(v, str):
            return v.lower() in ("on", "true", "1", "yes")
        return v


class SignupForm(HTTPSchemaModel):
    email: EmailStr
    redirect_to: Optional[str] = None

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower()


class VerifyForm(HTTPSchemaModel):
    code: str = Field(..., min_length=6, max_length=6)
    type: VerificationType
    target: str = Field(..., min_length=1, max_length=255)
    redirect_to: Optional[str] = None


class OnboardingForm(HTTPSchemaModel):
    username: str = Field(..., min_length=3, max_length=100, pattern=r"^[a-zA-Z0-9_.]+$")
    name: str = Field(..., min_length=1, max_length=200)
    password: str = Field(..., min_length=6, max_length=100)
    confirm_password: str
    remember: bool = False
    redirect_to: Optional[str] = None

    @field_validator("username")
    @classmethod
    def lowercase_username(cls, v: str) -> str:
        return v.lower()

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, v: str, info: ValidationInfo) -> str:
        return _matches_password(v, info)

    @field_validator("remember", mode="before")
    @classmethod
    def checkbox(cls, v):
        if isinstance(v, str):
            return v.lower() in ("on", "true", "1", "yes")
        return v


class ProviderOnboardingForm(HTTPSchemaModel):
    """Account details for a user first seen through a provider; no password."""

    username: str = Field(..., min_length=3, max_length=100, pattern=r"^[a-zA-Z0-9_.]+$")
    name: str = Field(..., min_length=1, max_length=200)
    remember: bool = False
    redirect_to: Optional[str] = None

    @field_validator("username")
    @classmethod
    def lowercase_username(cls, v: str) -> str:
        return v.lower()

    @field_validator("remember", mode="before")
    @classmethod
    def checkbox(cls, v):
        if isinstance(v, str):
            return v.lower() in ("on", "true", "1", "yes")
        return v


class ProviderOnboardingRead(HTTPSchemaModel):
    """The verified email and the profile suggested by the provider."""

    email: str
    username: Optional[str] = None
    name: Optional[str] = None


class ForgotPasswordForm(HTTPSchemaModel):
    username_or_email: str = Field(..., min_length=1, max_length=255)

    @field_validator("username_or_email")
    @classmethod
    def normalize(cls, v: str) -> str:
        return v.strip().lower()


class ResetPasswordForm(HTTPSchemaModel):
    password: str = Field(..., min_length=6, max_length=100)
    confirm_password: str

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, v: str, info: ValidationInfo) -> str:
        return _matches_password(v, info)


class ThemeForm(HTTPSchemaModel):
    theme: Literal["light", "dark", "system"]


class ThemeRead(HTTPSchemaModel):
    theme: Literal["light", "dark", "system"] = "system"


class CsrfRead(HTTPSchemaModel):
    csrf: str


class ToastRead(HTTPSchemaModel):
    type: str
    title: str
    description: str = ""
