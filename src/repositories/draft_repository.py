"""Firestore persistence for drafts a user chose to keep."""

from __future__ import annotations

from typing import Optional

from google.cloud import firestore

from src.config import get_settings
from src.exceptions import ErrorCode, ErrorContext, StorageError
from src.logging_config import get_logger
from src.models import GenerationRequest

logger = get_logger(__name__)


class DraftRepository:
    """Append-only store of saved drafts under ``users/{user_id}/drafts``."""

    def __init__(self, client: Optional[firestore.Client] = None) -> None:
        settings = get_settings()
        self._client = client or firestore.Client(project=settings.gcp_project_id)
        self._layout = settings.firestore

    def append_draft(
        self,
        user_id: str,
        request: GenerationRequest,
        generated_text: str
    ) -> str:
        """
        Save one generated draft with the fields it was built from.

        Returns:
            The new document ID.

        Raises:
            StorageError: If the write fails.
        """
        record = {
            "userId": user_id,
            **request.to_record(),
            "generatedText": generated_text,
            "timestamp": firestore.SERVER_TIMESTAMP,
        }
        try:
            doc_ref = (
                self._client.collection(self._layout.users_collection)
                .document(user_id)
                .collection(self._layout.drafts_subcollection)
                .document()
            )
            doc_ref.set(record)
        except Exception as e:
            logger.error("Failed to save draft", user_id=user_id, error=str(e))
            raise StorageError(
                message=f"Failed to save draft: {e}",
                code=ErrorCode.DRAFT_WRITE_ERROR,
                context=ErrorContext(operation="append_draft", user_id=user_id, resource_type="saved_draft"),
                cause=e
            )

        logger.info("Draft saved", user_id=user_id, draft_id=doc_ref.id)
        return doc_ref.id


_repository: Optional[DraftRepository] = None


def get_draft_repository() -> DraftRepository:
    global _repository
    if _repository is None:
        _repository = DraftRepository()
    return _repository
