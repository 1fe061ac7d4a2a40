from datetime import datetime

import pytest
from sqlalchemy import func, select

from models import Category, Transaction, TransactionType
from schemas import CategoryIn, CategoryUpdate, TransactionIn
from services import (
    CategoryService,
    NotFoundError,
    ReferentialConflictError,
    TransactionService,
)


def _expense(session, category_id: int, amount: float = 10.0) -> Transaction:
    return TransactionService(session).create(
        TransactionIn(
            amount=amount,
            description="Lunch",
            date=datetime(2024, 1, 15, 12, 0),
            category_id=category_id,
            type=TransactionType.expense,
        )
    )


def test_create_category_assigns_id_and_timestamp(session) -> None:
    category = CategoryService(session).create(
        CategoryIn(name="Salary", type=TransactionType.income)
    )

    assert category.id is not None
    assert category.name == "Salary"
    assert category.type == TransactionType.income
    assert isinstance(category.created_at, datetime)


def test_duplicate_category_names_are_allowed(session) -> None:
    service = CategoryService(session)
    first = service.create(CategoryIn(name="Food", type=TransactionType.expense))
    second = service.create(CategoryIn(name="Food", type=TransactionType.expense))

    assert first.id != second.id
    assert [c.name for c in service.list_all()] == ["Food", "Food"]


def test_list_all_filters_by_type_in_insertion_order(session) -> None:
    service = CategoryService(session)
    service.create(CategoryIn(name="Salary", type=TransactionType.income))
    service.create(CategoryIn(name="Food", type=TransactionType.expense))
    service.create(CategoryIn(name="Bonus", type=TransactionType.income))

    assert [c.name for c in service.list_all()] == ["Salary", "Food", "Bonus"]
    assert [c.name for c in service.list_all(TransactionType.income)] == [
        "Salary",
        "Bonus",
    ]
    assert [c.name for c in service.list_all(TransactionType.expense)] == ["Food"]


def test_update_applies_only_supplied_fields(session) -> None:
    service = CategoryService(session)
    category = service.create(CategoryIn(name="Food", type=TransactionType.expense))
    created_at = category.created_at

    updated = service.update(category.id, CategoryUpdate(name="Groceries"))

    assert updated.name == "Groceries"
    assert updated.type == TransactionType.expense
    assert updated.created_at == created_at

    updated = service.update(category.id, CategoryUpdate(type=TransactionType.income))
    assert updated.name == "Groceries"
    assert updated.type == TransactionType.income


def test_empty_update_returns_existing_row(session) -> None:
    service = CategoryService(session)
    category = service.create(CategoryIn(name="Food", type=TransactionType.expense))

    unchanged = service.update(category.id, CategoryUpdate())

    assert unchanged.id == category.id
    assert unchanged.name == "Food"
    assert unchanged.type == TransactionType.expense


def test_update_unknown_category_raises(session) -> None:
    with pytest.raises(NotFoundError, match="Category with id 42 not found"):
        CategoryService(session).update(42, CategoryUpdate(name="Nope"))
    with pytest.raises(NotFoundError):
        CategoryService(session).update(42, CategoryUpdate())


def test_type_change_does_not_reclassify_transactions(session) -> None:
    service = CategoryService(session)
    category = service.create(CategoryIn(name="Misc", type=TransactionType.expense))
    txn = _expense(session, category.id)

    service.update(category.id, CategoryUpdate(type=TransactionType.income))

    assert TransactionService(session).get(txn.id).type == TransactionType.expense


def test_delete_unused_category(session) -> None:
    service = CategoryService(session)
    category = service.create(CategoryIn(name="Food", type=TransactionType.expense))

    result = service.delete(category.id)

    assert result.success is True
    assert session.get(Category, category.id) is None


def test_delete_unknown_category_raises(session) -> None:
    with pytest.raises(NotFoundError, match="Category with id 7 not found"):
        CategoryService(session).delete(7)


def test_delete_is_blocked_while_transactions_reference_category(session) -> None:
    service = CategoryService(session)
    category = service.create(CategoryIn(name="Food", type=TransactionType.expense))
    txns = [_expense(session, category.id, amount) for amount in (5.0, 6.5, 7.25)]

    with pytest.raises(ReferentialConflictError) as excinfo:
        service.delete(category.id)

    assert excinfo.value.count == 3
    assert "3 transaction(s)" in str(excinfo.value)
    assert session.get(Category, category.id) is not None

    for txn in txns:
        assert TransactionService(session).delete(txn.id).success is True

    assert service.delete(category.id).success is True
    remaining = session.execute(select(func.count(Category.id))).scalar_one()
    assert remaining == 0
