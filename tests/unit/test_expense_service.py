import pytest
from datetime import date
from decimal import Decimal

from roomsplit.categorization.base import CategorizationError, CategorizationResult
from roomsplit.database.document_store import PersistenceError
from roomsplit.domain.models import Expense, ExpenseDraft, ExpenseUpdate, Session
from roomsplit.services.expense_service import ExpenseService
from roomsplit.storage.base import ObjectNotFoundError, StorageError, StoredObject


@pytest.fixture
def mock_repository(mocker):
    repository = mocker.Mock()

    def assign_id(expense):
        expense.id = "new-id"
        return expense

    repository.add.side_effect = assign_id
    return repository


@pytest.fixture
def mock_categorizer(mocker):
    categorizer = mocker.Mock()
    categorizer.categorize.return_value = CategorizationResult(category="Groceries", confidence=0.9)
    return categorizer


@pytest.fixture
def mock_media_store(mocker):
    media_store = mocker.Mock()
    media_store.store.return_value = StoredObject(
        url="http://media.test/receipts/alice-0001/2_new.jpg",
        path="receipts/alice-0001/2_new.jpg",
    )
    return media_store


@pytest.fixture
def service(mock_repository, mock_categorizer, mock_media_store) -> ExpenseService:
    return ExpenseService(
        repository=mock_repository,
        categorizer=mock_categorizer,
        media_store=mock_media_store,
    )


@pytest.fixture
def draft() -> ExpenseDraft:
    return ExpenseDraft(
        room_id="room-abc123",
        date=date(2025, 3, 2),
        shop="SuperMart",
        items="milk, bread",
        cost=Decimal("12.50"),
    )


@pytest.fixture
def stored_expense() -> Expense:
    return Expense(
        id="exp-1",
        user_id="alice-0001",
        room_id="room-abc123",
        date=date(2025, 3, 2),
        shop="SuperMart",
        items="milk, bread",
        cost=Decimal("12.50"),
        category="Groceries",
        image_url="http://media.test/receipts/alice-0001/1_old.jpg",
        image_path="receipts/alice-0001/1_old.jpg",
    )


def make_update(**overrides) -> ExpenseUpdate:
    fields = dict(
        id="exp-1",
        date=date(2025, 3, 3),
        shop="Corner Cafe",
        items="two lattes",
        cost=Decimal("9.00"),
    )
    fields.update(overrides)
    return ExpenseUpdate(**fields)


@pytest.mark.unit
class TestExpenseServiceCreate:

    def test_create_uses_ai_category(self, service, mock_repository, mock_categorizer, session, draft):
        # Act
        expense = service.create(session, draft)

        # Assert
        mock_categorizer.categorize.assert_called_once_with("SuperMart", "milk, bread")
        mock_repository.add.assert_called_once()
        assert expense.id == "new-id"
        assert expense.category == "Groceries"
        assert expense.cost == Decimal("12.50")
        assert expense.user_id == session.user_id
        assert expense.room_id == "room-abc123"
        assert expense.image_path is None

    def test_create_with_receipt_attaches_image(
        self, service, mock_media_store, session, draft, receipt
    ):
        # Arrange
        draft.receipt = receipt

        # Act
        expense = service.create(session, draft)

        # Assert
        mock_media_store.store.assert_called_once_with(session.user_id, receipt)
        assert expense.image_path == "receipts/alice-0001/2_new.jpg"
        assert expense.image_url.endswith("2_new.jpg")

    def test_empty_category_falls_back_to_uncategorized(
        self, service, mock_categorizer, session, draft
    ):
        mock_categorizer.categorize.return_value = CategorizationResult(category="", confidence=0.1)

        expense = service.create(session, draft)

        assert expense.category == "Uncategorized"

    def test_auth_failure_aborts_with_credential_hint(
        self, service, mock_repository, mock_categorizer, mock_media_store, session, draft, receipt
    ):
        # Arrange
        draft.receipt = receipt
        mock_categorizer.categorize.side_effect = CategorizationError("API key not valid", auth_failure=True)

        # Act
        with pytest.raises(CategorizationError, match="GOOGLE_API_KEY") as exc_info:
            service.create(session, draft)

        # Assert
        assert exc_info.value.auth_failure
        mock_media_store.store.assert_not_called()
        mock_repository.add.assert_not_called()

    def test_service_failure_aborts(self, service, mock_repository, mock_categorizer, session, draft):
        mock_categorizer.categorize.side_effect = CategorizationError("timeout")

        with pytest.raises(CategorizationError, match="issue with the AI service"):
            service.create(session, draft)

        mock_repository.add.assert_not_called()

    def test_persistence_failure_adds_context(self, service, mock_repository, session, draft):
        mock_repository.add.side_effect = PersistenceError("permission denied")

        with pytest.raises(PersistenceError, match="access rule issue.*permission denied"):
            service.create(session, draft)

    def test_persistence_failure_cleans_up_receipt(
        self, service, mock_repository, mock_media_store, session, draft, receipt
    ):
        # Arrange
        draft.receipt = receipt
        mock_repository.add.side_effect = PersistenceError("disk full")

        # Act
        with pytest.raises(PersistenceError):
            service.create(session, draft)

        # Assert
        mock_media_store.remove.assert_called_once_with("receipts/alice-0001/2_new.jpg")

    def test_receipt_upload_failure_propagates(
        self, service, mock_repository, mock_media_store, session, draft, receipt
    ):
        draft.receipt = receipt
        mock_media_store.store.side_effect = StorageError("quota exceeded")

        with pytest.raises(StorageError, match="quota"):
            service.create(session, draft)

        mock_repository.add.assert_not_called()


@pytest.mark.unit
class TestExpenseServiceUpdate:

    def test_update_recategorizes(
        self, service, mock_repository, mock_categorizer, stored_expense, session
    ):
        # Arrange
        mock_repository.get.return_value = stored_expense
        mock_categorizer.categorize.return_value = CategorizationResult("Food & Dining", 0.8)

        # Act
        expense = service.update(session, make_update())

        # Assert
        mock_categorizer.categorize.assert_called_once_with("Corner Cafe", "two lattes")
        mock_repository.update.assert_called_once_with(
            "exp-1",
            {
                "date": date(2025, 3, 3),
                "shop": "Corner Cafe",
                "items": "two lattes",
                "cost": Decimal("9.00"),
                "category": "Food & Dining",
            },
        )
        assert expense.category == "Food & Dining"
        assert expense.image_path == "receipts/alice-0001/1_old.jpg"

    def test_categorization_failure_keeps_previous_category(
        self, service, mock_repository, mock_categorizer, stored_expense, session
    ):
        mock_repository.get.return_value = stored_expense
        mock_categorizer.categorize.side_effect = CategorizationError("boom")

        expense = service.update(session, make_update())

        assert expense.category == "Groceries"
        assert mock_repository.update.call_args.args[1]["category"] == "Groceries"

    def test_new_receipt_replaces_old_image(
        self, service, mock_repository, mock_media_store, stored_expense, session, receipt, mocker
    ):
        # Arrange
        mock_repository.get.return_value = stored_expense
        calls = mocker.Mock()
        calls.attach_mock(mock_media_store.remove, "remove")
        calls.attach_mock(mock_media_store.store, "store")

        # Act
        expense = service.update(
            session, make_update(receipt=receipt)
        )

        # Assert - old image deleted before the new one is stored
        assert [c[0] for c in calls.mock_calls] == ["remove", "store"]
        mock_media_store.remove.assert_called_once_with("receipts/alice-0001/1_old.jpg")
        assert expense.image_path == "receipts/alice-0001/2_new.jpg"
        assert expense.image_path != "receipts/alice-0001/1_old.jpg"

    def test_old_image_delete_failure_is_not_fatal(
        self, service, mock_repository, mock_media_store, stored_expense, session, receipt
    ):
        mock_repository.get.return_value = stored_expense
        mock_media_store.remove.side_effect = StorageError("permission denied")

        expense = service.update(session, make_update(receipt=receipt))

        assert expense.image_path == "receipts/alice-0001/2_new.jpg"
        mock_repository.update.assert_called_once()

    def test_remove_image_clears_fields(
        self, service, mock_repository, mock_media_store, stored_expense, session
    ):
        mock_repository.get.return_value = stored_expense

        expense = service.update(session, make_update(remove_image=True))

        mock_media_store.remove.assert_called_once_with("receipts/alice-0001/1_old.jpg")
        mock_media_store.store.assert_not_called()
        changes = mock_repository.update.call_args.args[1]
        assert changes["image_url"] is None
        assert changes["image_path"] is None
        assert expense.image_url is None

    def test_image_untouched_without_receipt_or_removal(
        self, service, mock_repository, mock_media_store, stored_expense, session
    ):
        mock_repository.get.return_value = stored_expense

        service.update(session, make_update())

        mock_media_store.remove.assert_not_called()
        mock_media_store.store.assert_not_called()
        assert "image_path" not in mock_repository.update.call_args.args[1]

    def test_failed_write_discards_new_receipt(
        self, service, mock_repository, mock_media_store, stored_expense, session, receipt
    ):
        # Arrange
        mock_repository.get.return_value = stored_expense
        mock_repository.update.side_effect = PersistenceError("rules rejected write")

        # Act
        with pytest.raises(PersistenceError, match="Failed to update expense"):
            service.update(session, make_update(receipt=receipt))

        # Assert - old image, then the orphaned new one
        assert [c.args[0] for c in mock_media_store.remove.call_args_list] == [
            "receipts/alice-0001/1_old.jpg",
            "receipts/alice-0001/2_new.jpg",
        ]

    def test_update_missing_expense(self, service, mock_repository, session):
        mock_repository.get.return_value = None

        with pytest.raises(PersistenceError, match="not found"):
            service.update(session, make_update())

    def test_update_by_other_user_is_rejected(
        self, service, mock_repository, stored_expense
    ):
        mock_repository.get.return_value = stored_expense

        with pytest.raises(PersistenceError, match="Permission denied"):
            service.update(Session("bob-0002"), make_update())

        mock_repository.update.assert_not_called()


@pytest.mark.unit
class TestExpenseServiceRemove:

    def test_remove_deletes_image_then_record(
        self, service, mock_repository, mock_media_store, stored_expense, session, mocker
    ):
        # Arrange
        mock_repository.get.return_value = stored_expense
        calls = mocker.Mock()
        calls.attach_mock(mock_media_store.remove, "remove")
        calls.attach_mock(mock_repository.delete, "delete")

        # Act
        service.remove(session, "exp-1")

        # Assert
        assert [c[0] for c in calls.mock_calls] == ["remove", "delete"]
        mock_media_store.remove.assert_called_once_with("receipts/alice-0001/1_old.jpg")
        mock_repository.delete.assert_called_once_with("exp-1")

    def test_missing_image_is_not_an_error(
        self, service, mock_repository, mock_media_store, stored_expense, session
    ):
        mock_repository.get.return_value = stored_expense
        mock_media_store.remove.side_effect = ObjectNotFoundError("gone")

        service.remove(session, "exp-1")

        mock_repository.delete.assert_called_once_with("exp-1")

    def test_image_failure_keeps_record(
        self, service, mock_repository, mock_media_store, stored_expense, session
    ):
        mock_repository.get.return_value = stored_expense
        mock_media_store.remove.side_effect = StorageError("permission denied")

        with pytest.raises(StorageError, match="Could not delete receipt image"):
            service.remove(session, "exp-1")

        mock_repository.delete.assert_not_called()

    def test_remove_already_deleted_expense(
        self, service, mock_repository, mock_media_store, session
    ):
        mock_repository.get.return_value = None
        mock_repository.delete.return_value = False

        service.remove(session, "exp-1", image_path="receipts/alice-0001/1_old.jpg")

        mock_media_store.remove.assert_called_once_with("receipts/alice-0001/1_old.jpg")

    def test_stored_image_path_wins_over_caller_path(
        self, service, mock_repository, mock_media_store, stored_expense, session
    ):
        mock_repository.get.return_value = stored_expense

        service.remove(session, "exp-1", image_path="receipts/bob-0002/9_bobs.jpg")

        mock_media_store.remove.assert_called_once_with("receipts/alice-0001/1_old.jpg")

    @pytest.mark.parametrize("path", [
        "receipts/bob-0002/9_bobs.jpg",
        "receipts/alice-0001/../bob-0002/9_bobs.jpg",
        "avatars/alice-0001/me.png",
    ])
    def test_cannot_remove_foreign_path_for_deleted_expense(
        self, service, mock_repository, mock_media_store, session, path
    ):
        mock_repository.get.return_value = None

        with pytest.raises(PersistenceError, match="Permission denied"):
            service.remove(session, "exp-1", image_path=path)

        mock_media_store.remove.assert_not_called()
        mock_repository.delete.assert_not_called()

    def test_remove_by_other_user_is_rejected(
        self, service, mock_repository, mock_media_store, stored_expense
    ):
        mock_repository.get.return_value = stored_expense

        with pytest.raises(PersistenceError, match="Permission denied"):
            service.remove(Session("bob-0002"), "exp-1")

        mock_media_store.remove.assert_not_called()
        mock_repository.delete.assert_not_called()

    def test_delete_failure_adds_context(
        self, service, mock_repository, stored_expense, session
    ):
        mock_repository.get.return_value = stored_expense
        mock_repository.delete.side_effect = PersistenceError("locked")

        with pytest.raises(PersistenceError, match="Failed to delete expense data.*locked"):
            service.remove(session, "exp-1")
