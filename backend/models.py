from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator
from pydantic.networks import validate_email
from typing import Optional, Dict, Any, List
from datetime import datetime, timezone
from enum import Enum
import uuid

# ============================================================================
# ENUMS (System Constants)
# ============================================================================

class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"

class ServiceType(str, Enum):
    CERTIFIED = "certified"
    GENERAL = "general"
    CUSTOM = "custom"

class DocumentDomain(str, Enum):
    GENERAL = "general"
    CERTIFICATE = "certificate"
    LEGAL = "legal"
    MEDICAL = "medical"
    TECHNICAL = "technical"

class OcrQuality(str, Enum):
    LOW = "low"
    HIGH = "high"

class TranslationProvider(str, Enum):
    GOOGLE = "google"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OPENROUTER = "openrouter"

class TranslationStatus(str, Enum):
    PENDING = "pending"
    TRANSLATING = "translating"
    REVIEW = "review"
    APPROVED = "approved"
    COMPLETED = "completed"

class UsageKind(str, Enum):
    TEXT = "text"
    VISION = "vision"
    OCR = "ocr"

class EmailKind(str, Enum):
    ORDER_CREATED = "order_created"
    PAYMENT_REMINDER = "payment_reminder"
    FINAL_NOTICE = "final_notice"
    PAYMENT_CONFIRMED = "payment_confirmed"
    QUOTE_READY = "quote_ready"

class AuditAction(str, Enum):
    # Users
    USER_SYNCED = "USER_SYNCED"
    USER_CREATED_BY_ADMIN = "USER_CREATED_BY_ADMIN"
    USER_ROLE_CHANGED = "USER_ROLE_CHANGED"
    USER_DETAILS_UPDATED = "USER_DETAILS_UPDATED"
    ADMIN_BOOTSTRAPPED = "ADMIN_BOOTSTRAPPED"

    # Orders
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_PAID = "ORDER_PAID"
    ORDER_STATUS_CHANGED = "ORDER_STATUS_CHANGED"
    ORDER_QUOTE_SET = "ORDER_QUOTE_SET"
    TRANSLATED_FILES_UPLOADED = "TRANSLATED_FILES_UPLOADED"
    TRANSLATED_FILE_DELETED = "TRANSLATED_FILE_DELETED"
    PAYMENT_REMINDER_SENT = "PAYMENT_REMINDER_SENT"
    FINAL_NOTICE_SENT = "FINAL_NOTICE_SENT"

    # Translations
    TRANSLATION_RUN = "TRANSLATION_RUN"
    TRANSLATION_FAILED = "TRANSLATION_FAILED"
    TRANSLATION_APPROVED = "TRANSLATION_APPROVED"
    DOCUMENT_GENERATED = "DOCUMENT_GENERATED"

    # Settings
    PRICING_UPDATED = "PRICING_UPDATED"
    JOB_RUN = "JOB_RUN"

    # Email
    EMAIL_SENT = "EMAIL_SENT"
    EMAIL_FAILED = "EMAIL_FAILED"


# ============================================================================
# RECORDS
# ============================================================================

class User(BaseModel):
    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    user_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    clerk_id: str
    email: EmailStr
    role: UserRole = UserRole.USER
    name: Optional[str] = None
    telephone: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class OrderFile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    file_name: str
    file_url: str
    storage_id: Optional[str] = None
    file_size: int = Field(ge=0)
    page_count: int = Field(ge=0)
    file_type: str

class TranslatedFile(OrderFile):
    original_file_name: str
    translated_at: Optional[datetime] = None
    version_number: Optional[int] = None

class Segment(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    original_text: str
    translated_text: str
    is_edited: bool = False
    edited_at: Optional[datetime] = None
    page_number: Optional[int] = None
    order: int

class UsageEvent(BaseModel):
    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    provider: TranslationProvider
    kind: UsageKind
    model: Optional[str] = None
    input_chars: Optional[int] = None
    output_chars: Optional[int] = None
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    requests: Optional[int] = None

class AuditLog(BaseModel):
    model_config = ConfigDict(extra="ignore")

    audit_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    action: AuditAction
    actor_role: Optional[UserRole] = None
    actor_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    before_state: Optional[Dict[str, Any]] = None
    after_state: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class MessageLog(BaseModel):
    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    message_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    postmark_message_id: Optional[str] = None
    order_id: Optional[str] = None
    recipient: EmailStr
    kind: Optional[EmailKind] = None
    subject: str
    status: str = "queued"
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None
    provider_error_type: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ============================================================================
# REQUEST MODELS
# ============================================================================

class SyncUserRequest(BaseModel):
    email: EmailStr
    name: Optional[str] = None
    telephone: Optional[str] = None

class CreateClientUserRequest(BaseModel):
    email: EmailStr
    name: Optional[str] = None
    telephone: Optional[str] = None

class UpdateUserRoleRequest(BaseModel):
    role: UserRole

class UpdateUserDetailsRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    telephone: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email_address(cls, v: Optional[str]) -> Optional[str]:
        # blank is rejected by update_user_details
        if v is None or not v.strip():
            return v
        return validate_email(v.strip())[1]

class CreateOrderRequest(BaseModel):
    files: List[OrderFile] = Field(min_length=1)
    total_pages: int = Field(ge=1)
    service_type: ServiceType
    is_rush: bool = False
    document_domain: DocumentDomain = DocumentDomain.GENERAL
    remarks: Optional[str] = None
    source_language: str
    target_language: str
    ocr_quality: OcrQuality = OcrQuality.HIGH

class PricingTier(BaseModel):
    base_per_page: float = Field(ge=0)
    rush_extra_per_page: float = Field(ge=0)

class PricingSettings(BaseModel):
    certified: PricingTier
    general: PricingTier
