import logging
import posixpath
from typing import Any, Dict, List, Optional

from roomsplit.categorization.base import CategorizationError, ExpenseCategorizer
from roomsplit.database.document_store import PersistenceError, Subscription
from roomsplit.domain.models import (
    UNCATEGORIZED,
    Expense,
    ExpenseDraft,
    ExpenseUpdate,
    Session,
)
from roomsplit.repositories.expense_repository import ExpenseRepository, ExpenseSnapshotCallback
from roomsplit.storage.base import (
    MediaStore,
    ObjectNotFoundError,
    StorageError,
    StoredObject,
    owner_folder,
)

logger = logging.getLogger(__name__)

AUTH_HINT = (
    "AI categorization failed. Please ensure your GOOGLE_API_KEY is set "
    "correctly in the .env file."
)
SERVICE_HINT = "AI categorization failed. There might be an issue with the AI service."


class ExpenseService:
    """
    The expense write path: categorize, attach receipt, persist.

    Steps are not transactional. A receipt stored during a create whose
    write then fails is cleaned up on a best-effort basis.
    """

    def __init__(
        self,
        repository: ExpenseRepository,
        categorizer: ExpenseCategorizer,
        media_store: MediaStore,
    ):
        self.repository = repository
        self.categorizer = categorizer
        self.media_store = media_store

    def create(self, session: Session, draft: ExpenseDraft) -> Expense:
        """
        Create an expense for the session's user.

        Categorization runs first and is fatal: if it fails nothing is
        stored.

        Args:
            session: The author
            draft: Validated expense fields and optional receipt

        Returns:
            The persisted expense with its id

        Raises:
            CategorizationError: If the category can't be determined
            StorageError: If the receipt upload fails
            PersistenceError: If the record can't be written
        """
        try:
            result = self.categorizer.categorize(draft.shop, draft.items)
        except CategorizationError as e:
            logger.error("AI categorization failed: %s", e)
            raise CategorizationError(
                AUTH_HINT if e.auth_failure else SERVICE_HINT,
                auth_failure=e.auth_failure,
            ) from e

        expense = Expense(
            user_id=session.user_id,
            room_id=draft.room_id,
            date=draft.date,
            shop=draft.shop,
            items=draft.items,
            cost=draft.cost,
            category=result.category or UNCATEGORIZED,
        )

        stored: Optional[StoredObject] = None
        if draft.receipt is not None:
            stored = self.media_store.store(session.user_id, draft.receipt)
            expense.image_url = stored.url
            expense.image_path = stored.path

        try:
            return self.repository.add(expense)
        except PersistenceError as e:
            logger.error("Error writing expense: %s", e)
            if stored is not None:
                self._discard_orphan(stored.path)
            raise PersistenceError(
                "Failed to save expense. This is likely an access rule issue. "
                f"Original error: {e}"
            ) from e

    def update(self, session: Session, update: ExpenseUpdate) -> Expense:
        """
        Edit an expense the session's user authored.

        The category is recomputed from the new shop/items. A failed
        categorization keeps the category already on the record.

        Image handling:
        - new receipt: old image deleted (best-effort), new one stored
        - remove_image without a receipt: old image deleted, fields cleared
        - otherwise: image left as is

        Raises:
            StorageError: If the new receipt can't be stored
            PersistenceError: If the expense is missing, belongs to someone
                else, or can't be written
        """
        existing = self._get_owned(session, update.id)

        try:
            category = self.categorizer.categorize(update.shop, update.items).category
        except CategorizationError as e:
            logger.error("AI categorization failed, keeping '%s': %s", existing.category, e)
            category = existing.category

        changes: Dict[str, Any] = {
            "date": update.date,
            "shop": update.shop,
            "items": update.items,
            "cost": update.cost,
            "category": category or UNCATEGORIZED,
        }

        old_image_path = existing.image_path
        stored: Optional[StoredObject] = None

        if update.receipt is not None:
            if old_image_path:
                self._delete_quietly(old_image_path)
            stored = self.media_store.store(session.user_id, update.receipt)
            changes["image_url"] = stored.url
            changes["image_path"] = stored.path
        elif update.remove_image:
            if old_image_path:
                self._delete_quietly(old_image_path)
            changes["image_url"] = None
            changes["image_path"] = None

        try:
            self.repository.update(update.id, changes)
        except PersistenceError as e:
            logger.error("Error updating expense %s: %s", update.id, e)
            if stored is not None:
                self._discard_orphan(stored.path)
            raise PersistenceError(
                "Failed to update expense. This is likely an access rule issue. "
                f"Original error: {e}"
            ) from e

        for name, value in changes.items():
            setattr(existing, name, value)
        return existing

    def remove(self, session: Session, expense_id: str, image_path: Optional[str] = None) -> None:
        """
        Delete an expense and its receipt image.

        The image goes first. If it can't be deleted for any reason other
        than already being gone, the record is kept.

        The image path stored on the record is the one deleted. image_path
        is only used when the record is already gone, and must be one of
        the caller's own receipts.

        Raises:
            StorageError: If the image deletion fails
            PersistenceError: If the record belongs to someone else or the
                delete fails
        """
        existing = self.repository.get(expense_id)
        if existing is not None:
            self._check_author(session, existing)
            image_path = existing.image_path
        elif image_path and not self._owns_path(session, image_path):
            raise PersistenceError(
                f"Permission denied: '{image_path}' is not one of your receipts"
            )

        if image_path:
            try:
                self.media_store.remove(image_path)
            except ObjectNotFoundError:
                logger.info("Receipt %s already gone", image_path)
            except StorageError as e:
                logger.error("Error deleting image %s: %s", image_path, e)
                raise StorageError("Could not delete receipt image. Please try again.") from e

        try:
            self.repository.delete(expense_id)
        except PersistenceError as e:
            logger.error("Error deleting expense %s: %s", expense_id, e)
            raise PersistenceError(
                "Failed to delete expense data. This might be an access rule issue. "
                f"Original error: {e}"
            ) from e

    def get(self, expense_id: str) -> Optional[Expense]:
        return self.repository.get(expense_id)

    def list_room(self, room_id: str) -> List[Expense]:
        return self.repository.list_by_room(room_id)

    def subscribe_room(self, room_id: str, callback: ExpenseSnapshotCallback) -> Subscription:
        return self.repository.subscribe_room(room_id, callback)

    def _get_owned(self, session: Session, expense_id: str) -> Expense:
        expense = self.repository.get(expense_id)
        if expense is None:
            raise PersistenceError(f"Expense '{expense_id}' not found")
        self._check_author(session, expense)
        return expense

    def _check_author(self, session: Session, expense: Expense) -> None:
        if expense.user_id != session.user_id:
            raise PersistenceError(
                f"Permission denied: expense '{expense.id}' can only be changed by its author"
            )

    def _owns_path(self, session: Session, path: str) -> bool:
        normalized = posixpath.normpath(path)
        return normalized.startswith(owner_folder(session.user_id))

    def _delete_quietly(self, path: str) -> None:
        try:
            self.media_store.remove(path)
        except StorageError as e:
            logger.warning("Failed to delete old image %s: %s", path, e)

    def _discard_orphan(self, path: str) -> None:
        logger.warning("Removing receipt %s left behind by failed save", path)
        self._delete_quietly(path)
