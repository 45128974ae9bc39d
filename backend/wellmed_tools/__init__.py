from wellmed_core.errors import ProviderError

from .documents import ExtractedDocument, extract_document_text, is_pdf_upload
from .llm_providers import ProviderChatClient

__all__ = [
    "ExtractedDocument",
    "ProviderChatClient",
    "ProviderError",
    "extract_document_text",
    "is_pdf_upload",
]
