"""Request and response models."""

import math
from datetime import datetime
from typing import List, Literal, Optional

from email_validator import EmailNotValidError, validate_email
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

Role = Literal["employee", "manager"]
Category = Literal["food", "others", "services", "transport", "accommodation"]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


def _normalize_email(value: str) -> str:
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        raise ValueError("E-mail inválido")
    return value


class UserCreate(BaseModel):
    """Request body for registering a new user."""

    name: str
    email: str
    password: str
    role: Role = "employee"

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Nome é obrigatório!")
        return v

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: str) -> str:
        return _normalize_email(v.strip().lower())

    @field_validator("password")
    @classmethod
    def password_length(cls, v: str) -> str:
        if len(v) < 6:
            raise ValueError("A senha deve ter pelo menos 6 dígitos")
        if len(v.encode("utf-8")) > 72:
            raise ValueError("A senha deve ter no máximo 72 bytes")
        return v


class SessionCreate(BaseModel):
    """Request body for user login."""

    email: str
    password: str

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: str) -> str:
        return _normalize_email(v.strip().lower())


class UserOut(CamelModel):
    """User as returned to clients; the password hash is never included."""

    id: str
    name: str
    email: str
    role: str
    created_at: datetime
    updated_at: Optional[datetime] = None


class SessionResponse(BaseModel):
    token: str
    user: UserOut


class RefundCreate(BaseModel):
    """Request body for creating a refund request."""

    name: str
    category: Category
    amount: float
    filename: str = Field(min_length=20)

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Informe o nome da solicitação")
        return v

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, v: float) -> float:
        # Rejects NaN and infinities as well.
        if not math.isfinite(v) or v <= 0:
            raise ValueError("O valor precisa ser positivo")
        return v


class RefundOwner(CamelModel):
    name: str


class RefundOut(CamelModel):
    """Serialized refund request."""

    id: str
    name: str
    category: str
    amount: float
    filename: str
    user_id: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    user: Optional[RefundOwner] = None


class RefundResponse(BaseModel):
    refund: RefundOut


class RefundShowResponse(BaseModel):
    refund: Optional[RefundOut] = None


class Pagination(CamelModel):
    page: int
    per_page: int
    total_records: int
    total_pages: int


class RefundListResponse(BaseModel):
    """Paginated list of refund requests."""

    refunds: List[RefundOut]
    pagination: Pagination


class UploadedFile(BaseModel):
    """Metadata of a received upload, validated before it is persisted.

    The accepted MIME types and the size limit are passed through the
    validation context as ``accepted_types`` and ``max_file_size``.
    """

    filename: str
    mimetype: str
    size: int

    @field_validator("filename")
    @classmethod
    def filename_required(cls, v: str) -> str:
        if not v:
            raise ValueError("Arquivo é obrigatório")
        return v

    @field_validator("mimetype")
    @classmethod
    def mimetype_accepted(cls, v: str, info: ValidationInfo) -> str:
        accepted = (info.context or {}).get("accepted_types", [])
        if v not in accepted:
            raise ValueError(
                "Formato de arquivo inválido, formatos permitidos: " + ",".join(accepted)
            )
        return v

    @field_validator("size")
    @classmethod
    def size_within_limit(cls, v: int, info: ValidationInfo) -> int:
        max_size = (info.context or {}).get("max_file_size", 0)
        if v <= 0:
            raise ValueError("Arquivo vazio")
        if v > max_size:
            raise ValueError(
                f"Arquivo excede o tamanho máximo de {max_size // (1024 * 1024)} MB"
            )
        return v


class UploadResponse(BaseModel):
    filename: str
