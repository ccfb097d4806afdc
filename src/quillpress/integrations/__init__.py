"""
External service integrations: OpenAI, ElevenLabs, S3 and SMTP.
"""

from quillpress.integrations.base_client import SyncBaseHTTPClient
from quillpress.integrations.elevenlabs_client import ElevenLabsClient
from quillpress.integrations.email_client import (
    EmailSender,
    NullEmailSender,
    SmtpEmailSender,
    get_email_sender,
)
from quillpress.integrations.openai_client import OpenAIClient, TokenUsage
from quillpress.integrations.storage_client import StorageClient, UploadResult

__all__ = [
    "ElevenLabsClient",
    "EmailSender",
    "NullEmailSender",
    "OpenAIClient",
    "SmtpEmailSender",
    "StorageClient",
    "SyncBaseHTTPClient",
    "TokenUsage",
    "UploadResult",
    "get_email_sender",
]
