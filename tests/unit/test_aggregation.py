import pytest
from datetime import date
from decimal import Decimal

from roomsplit.domain.models import Expense
from roomsplit.services import aggregation


@pytest.mark.unit
class TestTotalsByUser:

    def test_sums_per_user_with_roster_names(self, sample_expenses, roster):
        # Act
        result = aggregation.totals_by_user(sample_expenses, roster)

        # Assert
        totals = {entry.user_id: entry for entry in result}
        assert totals["alice-0001"].name == "Alice"
        assert totals["alice-0001"].total == Decimal("32.75")
        assert totals["bob-0002"].total == Decimal("80.00")

    def test_keeps_first_seen_order(self, sample_expenses, roster):
        result = aggregation.totals_by_user(sample_expenses, roster)

        assert [entry.user_id for entry in result] == ["alice-0001", "bob-0002", "gone-user-9xyz"]

    def test_unknown_user_gets_placeholder_name(self, sample_expenses, roster):
        result = aggregation.totals_by_user(sample_expenses, roster)

        assert result[-1].name == "User...9xyz"

    def test_zero_totals_are_excluded(self, roster):
        # Arrange
        expenses = [
            Expense("a", "room-1", date(2025, 1, 1), "Shop", "things", Decimal("10")),
            Expense("b", "room-1", date(2025, 1, 1), "Shop", "things", Decimal("0")),
        ]

        # Act
        result = aggregation.totals_by_user(expenses, roster)

        # Assert
        assert [entry.user_id for entry in result] == ["a"]

    def test_empty_input(self, roster):
        assert aggregation.totals_by_user([], roster) == []


@pytest.mark.unit
class TestTotalsByCategory:

    def test_sorted_descending(self, sample_expenses):
        result = aggregation.totals_by_category(sample_expenses)

        assert [entry.category for entry in result] == ["Utilities", "Groceries", "Uncategorized"]
        assert result[1].total == Decimal("32.75")

    def test_blank_category_counts_as_uncategorized(self, sample_expenses):
        result = aggregation.totals_by_category(sample_expenses)

        uncategorized = [entry for entry in result if entry.category == "Uncategorized"]
        assert len(uncategorized) == 1
        assert uncategorized[0].total == Decimal("7.75")

    def test_grand_total_is_conserved(self, sample_expenses):
        result = aggregation.totals_by_category(sample_expenses)

        assert sum(entry.total for entry in result) == sum(e.cost for e in sample_expenses)


@pytest.mark.unit
class TestMonthToDateSpend:

    def test_only_counts_current_month(self, sample_expenses):
        # February expense (20.25) is left out
        spend = aggregation.month_to_date_spend(sample_expenses, date(2025, 3, 20))

        assert spend == Decimal("100.25")

    def test_counts_expenses_after_reference_date_in_month(self, sample_expenses):
        spend = aggregation.month_to_date_spend(sample_expenses, date(2025, 3, 5))

        assert spend == Decimal("100.25")

    def test_nothing_this_month(self, sample_expenses):
        assert aggregation.month_to_date_spend(sample_expenses, date(2025, 5, 1)) == Decimal("0")

    def test_past_month_ignores_later_months(self, sample_expenses):
        # March expenses must not leak into February
        spend = aggregation.month_to_date_spend(sample_expenses, date(2025, 2, 10))

        assert spend == Decimal("20.25")

    def test_december_ends_at_new_year(self):
        expenses = [
            Expense("a", "room-1", date(2024, 12, 31), "Shop", "things", Decimal("10")),
            Expense("a", "room-1", date(2025, 1, 1), "Shop", "things", Decimal("500")),
        ]

        assert aggregation.month_to_date_spend(expenses, date(2024, 12, 15)) == Decimal("10")


@pytest.mark.unit
class TestBudgetProgress:

    def test_zero_spend(self):
        assert aggregation.budget_progress(Decimal("0"), Decimal("100")) == 0

    def test_not_clamped(self):
        assert aggregation.budget_progress(Decimal("150"), Decimal("100")) == 150

    @pytest.mark.parametrize("budget", [None, Decimal("0"), Decimal("-5")])
    def test_no_budget_means_zero(self, budget):
        assert aggregation.budget_progress(Decimal("40"), budget) == 0

    def test_category_budget_progress(self, sample_expenses):
        # Act
        result = aggregation.category_budget_progress(
            sample_expenses,
            {"Groceries": Decimal("10"), "Fun": Decimal("50")},
            date(2025, 3, 20),
        )

        # Assert
        groceries, fun = result
        assert groceries.spent == Decimal("12.50")
        assert groceries.progress == 125
        assert groceries.over_budget
        assert fun.spent == Decimal("0")
        assert fun.progress == 0
        assert not fun.over_budget

    def test_category_budget_progress_stays_in_month(self, sample_expenses):
        (groceries,) = aggregation.category_budget_progress(
            sample_expenses, {"Groceries": Decimal("100")}, date(2025, 2, 1)
        )

        assert groceries.spent == Decimal("20.25")


@pytest.mark.unit
class TestFilterAndSort:

    def test_default_is_newest_first(self, sample_expenses, roster):
        result = aggregation.filter_and_sort(sample_expenses, roster)

        assert [e.id for e in result] == ["e4", "e2", "e1", "e3"]

    def test_sort_by_cost_ascending(self, sample_expenses, roster):
        result = aggregation.filter_and_sort(sample_expenses, roster, sort_key="cost", direction="asc")

        assert [e.id for e in result] == ["e4", "e1", "e3", "e2"]

    def test_sort_by_shop_is_case_insensitive(self, sample_expenses, roster):
        result = aggregation.filter_and_sort(sample_expenses, roster, sort_key="shop", direction="asc")

        assert [e.shop for e in result] == ["aldi", "City Power", "Hardware Hub", "SuperMart"]

    def test_sort_by_user_name(self, sample_expenses, roster):
        result = aggregation.filter_and_sort(
            sample_expenses, roster, selected_users=["alice-0001", "bob-0002"], sort_key="user", direction="asc"
        )

        assert [e.user_id for e in result] == ["alice-0001", "alice-0001", "bob-0002"]

    def test_filter_by_selected_users(self, sample_expenses, roster):
        result = aggregation.filter_and_sort(sample_expenses, roster, selected_users=["bob-0002"])

        assert [e.id for e in result] == ["e2"]
        assert aggregation.table_total(result) == Decimal("80.00")

    def test_unknown_sort_key(self, sample_expenses, roster):
        with pytest.raises(ValueError, match="Unknown sort key"):
            aggregation.filter_and_sort(sample_expenses, roster, sort_key="category")
