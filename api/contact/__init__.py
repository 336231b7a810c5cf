"""Public contact form endpoint."""

import logging

from fastapi import APIRouter
from pydantic import BaseModel, Field, field_validator

from config import settings_conf
from database import get_pool

logger = logging.getLogger(__name__)

EMAIL_PATTERN = r'^[^\s@]+@[^\s@]+\.[^\s@]+$'
MIN_MESSAGE_LENGTH = 10

router = APIRouter(
    prefix="/api",
    tags=["Contact"]
)

class ContactRequest(BaseModel):
    """Contact form submission."""
    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., pattern=EMAIL_PATTERN)
    subject: str = Field(..., min_length=1, max_length=200)
    message: str
    category: str = Field(..., min_length=1, max_length=50)

    @field_validator('name', 'subject', 'category')
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()

    @field_validator('message')
    @classmethod
    def long_enough(cls, value: str) -> str:
        if len(value.strip()) < MIN_MESSAGE_LENGTH:
            raise ValueError(f"Message must be at least {MIN_MESSAGE_LENGTH} characters")
        return value.strip()

@router.post("/contact")
async def submit_contact(request: ContactRequest):
    """Store a contact form submission for the support team."""
    pool = await get_pool()
    async with pool.acquire() as conn:
        message_id = await conn.fetchval(
            '''
            INSERT INTO contact_messages (name, email, subject, message, category)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING id
            ''',
            request.name,
            request.email,
            request.subject,
            request.message,
            request.category
        )

    logger.info(
        f"Contact submission {message_id} ({request.category}) from {request.email}"
        + (f" for {settings_conf['admin_email']}" if settings_conf['admin_email'] else '')
    )
    return {"success": True, "id": message_id}
