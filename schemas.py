"""
Database Schemas

MongoDB collection schemas defined with Pydantic models. Documents are
stored with camelCase keys (``isActive``, ``zipCode``, ``createdAt``), the
same shape the API returns; the models expose snake_case attributes and
camelCase aliases.

Collections:
- User -> "user" collection
- Product -> "product" collection

``validate`` is the single entry point used before anything is written: it
turns a raw payload into a model instance or raises
``errors.ValidationError`` listing every violation.
"""

import re
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from errors import ValidationError

M = TypeVar("M", bound=BaseModel)

IMAGE_URL_RE = re.compile(r"^https?://.+\.(jpg|jpeg|png|webp|gif)$", re.IGNORECASE)

Role = Literal["user", "admin"]
DiscountType = Literal["percentage", "fixed"]


class Schema(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _strip(v: Any) -> Any:
    return v.strip() if isinstance(v, str) else v


# ---------- Users ----------

class Address(Schema):
    street: str
    city: str
    state: str
    zip_code: str
    country: str


class UserBase(Schema):
    name: str = Field(..., min_length=1, max_length=50, description="Full name")
    email: EmailStr = Field(..., description="Email address")
    role: Role = Field("user", description="User role")
    phone: Optional[str] = Field(None, description="Phone number")
    address: Optional[Address] = None

    @field_validator("name", "phone", mode="before")
    @classmethod
    def strip_text(cls, v):
        return _strip(v)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class UserCreate(UserBase):
    password: str = Field(..., min_length=6, description="Plaintext password, hashed before storage")


class UserRecord(UserBase):
    """Shape of a stored user, minus the password hash."""

    is_active: bool = Field(True, description="Whether user is active")


class UserUpdate(Schema):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    email: Optional[EmailStr] = None
    role: Optional[Role] = None
    phone: Optional[str] = None
    address: Optional[Address] = None


class LoginRequest(Schema):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ChangePasswordRequest(Schema):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


# ---------- Products ----------

class Discount(Schema):
    type: DiscountType
    value: float = Field(..., ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class Ratings(Schema):
    average: float = Field(0, ge=0, le=5)
    count: int = Field(0, ge=0)


class ProductBase(Schema):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=2000)
    price: float = Field(..., ge=0)
    category: str = Field(..., min_length=1)
    brand: Optional[str] = None
    sku: str = Field(..., min_length=1, description="Stock keeping unit, stored uppercase")
    stock: int = Field(0, ge=0)
    images: List[str] = Field(default_factory=list)
    specifications: Optional[Dict[str, str]] = None
    tags: List[str] = Field(default_factory=list)
    is_featured: bool = False
    discount: Optional[Discount] = None

    @field_validator("name", "category", "brand", mode="before")
    @classmethod
    def strip_text(cls, v):
        return _strip(v)

    @field_validator("sku", mode="before")
    @classmethod
    def normalize_sku(cls, v):
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, v):
        if isinstance(v, list):
            return [t.strip().lower() if isinstance(t, str) else t for t in v]
        return v

    @field_validator("images")
    @classmethod
    def check_images(cls, v: List[str]) -> List[str]:
        for url in v:
            if not IMAGE_URL_RE.match(url):
                raise ValueError("Please provide a valid image URL")
        return v


class ProductCreate(ProductBase):
    pass


class ProductRecord(ProductBase):
    is_active: bool = True
    ratings: Ratings = Field(default_factory=Ratings)


class ProductUpdate(Schema):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, min_length=1, max_length=2000)
    price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = Field(None, min_length=1)
    brand: Optional[str] = None
    sku: Optional[str] = Field(None, min_length=1)
    stock: Optional[int] = Field(None, ge=0)
    images: Optional[List[str]] = None
    specifications: Optional[Dict[str, str]] = None
    tags: Optional[List[str]] = None
    is_featured: Optional[bool] = None
    discount: Optional[Discount] = None


class StockUpdate(Schema):
    quantity: int = Field(..., ge=0)
    operation: Literal["add", "subtract"] = "add"


# ---------- Validation ----------

def _violations(exc: PydanticValidationError) -> List[str]:
    out = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        msg = err.get("msg", "invalid")
        out.append(f"{loc}: {msg}" if loc else msg)
    return out


def validate(model: Type[M], payload: Dict[str, Any]) -> M:
    """Validate ``payload`` against ``model`` without touching the database."""
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError("Validation error", _violations(exc)) from exc


def to_document(instance: BaseModel) -> Dict[str, Any]:
    """Render a validated model as a storable document (camelCase keys)."""
    return instance.model_dump(by_alias=True, exclude_none=True)


def _drop_none(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _drop_none(v) for k, v in value.items() if v is not None}
    return value


def changed_fields(instance: BaseModel, changes: Dict[str, Any]) -> Tuple[Dict[str, Any], List[str]]:
    """Split the fields named in ``changes`` into values to set and fields to clear.

    Values come from the validated ``instance`` so normalization (SKU, tags,
    email) applies. Keys in ``changes`` may be attribute names or aliases;
    unknown keys are ignored. A field that validated to None is cleared.
    """
    doc = instance.model_dump(by_alias=True)
    to_set: Dict[str, Any] = {}
    to_unset: List[str] = []
    for name, info in type(instance).model_fields.items():
        alias = info.alias or name
        if name not in changes and alias not in changes:
            continue
        value = doc.get(alias)
        if value is None:
            to_unset.append(alias)
        else:
            to_set[alias] = _drop_none(value)
    return to_set, to_unset
