from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, joinedload

from amounts import round2, to_amount
from config import Settings, get_settings
from database import atomic
from models import Category, Transaction, TransactionType
from schemas import (
    CategoryIn,
    CategoryReport,
    CategoryUpdate,
    DateRangeIn,
    DeleteResult,
    ExportResult,
    ReportPeriod,
    ReportSummary,
    TransactionIn,
    TransactionQuery,
    TransactionUpdate,
)

logger = logging.getLogger(__name__)


class NotFoundError(ValueError):
    pass


class ReferentialConflictError(ValueError):
    def __init__(self, count: int) -> None:
        super().__init__(
            f"Cannot delete category. {count} transaction(s) are associated "
            "with this category"
        )
        self.count = count


def export_filename(date_range: DateRangeIn, extension: str = "xlsx") -> str:
    start = date_range.start_date.strftime("%Y-%m-%d")
    end = date_range.end_date.strftime("%Y-%m-%d")
    return f"financial_report_{start}_to_{end}.{extension}"


class CategoryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self, type: Optional[TransactionType] = None) -> list[Category]:
        stmt = select(Category).order_by(Category.id)
        if type is not None:
            stmt = stmt.where(Category.type == type)
        return list(self.session.scalars(stmt).all())

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category:
            raise NotFoundError(f"Category with id {category_id} not found")
        return category

    def create(self, data: CategoryIn) -> Category:
        with atomic(self.session):
            category = Category(name=data.name, type=data.type)
            self.session.add(category)
            self.session.flush()
            logger.info(
                "category_created id=%s type=%s", category.id, category.type.value
            )
        return category

    def update(self, category_id: int, data: CategoryUpdate) -> Category:
        changes = data.changes()
        with atomic(self.session):
            category = self.get(category_id)
            if not changes:
                return category
            for field, value in changes.items():
                setattr(category, field, value)
            self.session.flush()
            logger.info(
                "category_updated id=%s fields=%s", category_id, sorted(changes)
            )
        return category

    def delete(self, category_id: int) -> DeleteResult:
        with atomic(self.session):
            category = self.get(category_id)
            usage = int(
                self.session.execute(
                    select(func.count(Transaction.id)).where(
                        Transaction.category_id == category_id
                    )
                ).scalar_one()
                or 0
            )
            if usage:
                logger.warning(
                    "category_delete_blocked id=%s transactions=%s", category_id, usage
                )
                raise ReferentialConflictError(usage)
            self.session.execute(delete(Category).where(Category.id == category.id))
        logger.info("category_deleted id=%s", category_id)
        return DeleteResult(success=True)


class TransactionService:
    def __init__(self, session: Session) -> None:
        self.session = session
        self.categories = CategoryService(session)

    def _joined(self):
        return select(Transaction).options(joinedload(Transaction.category))

    def get(self, transaction_id: int) -> Transaction:
        """Read a transaction and its category straight from the store.

        ``populate_existing`` overwrites whatever the identity map holds, so
        the result always reflects persisted state.
        """
        stmt = (
            self._joined()
            .where(Transaction.id == transaction_id)
            .execution_options(populate_existing=True)
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise NotFoundError(f"Transaction with id {transaction_id} not found")
        return txn

    def create(self, data: TransactionIn) -> Transaction:
        with atomic(self.session):
            self.categories.get(data.category_id)
            txn = Transaction(
                amount=to_amount(data.amount),
                description=data.description,
                date=data.date,
                category_id=data.category_id,
                type=data.type,
            )
            self.session.add(txn)
            self.session.flush()
            txn = self.get(txn.id)
            logger.info(
                "transaction_created id=%s category_id=%s type=%s",
                txn.id,
                txn.category_id,
                txn.type.value,
            )
        return txn

    def list(self, query: Optional[TransactionQuery] = None) -> list[Transaction]:
        query = query or TransactionQuery()
        stmt = self._joined().order_by(Transaction.date.asc(), Transaction.id.asc())
        if query.start_date is not None:
            stmt = stmt.where(Transaction.date >= query.start_date)
        if query.end_date is not None:
            stmt = stmt.where(Transaction.date <= query.end_date)
        if query.type is not None:
            stmt = stmt.where(Transaction.type == query.type)
        if query.category_id is not None:
            stmt = stmt.where(Transaction.category_id == query.category_id)
        return list(self.session.scalars(stmt).unique().all())

    def update(self, transaction_id: int, data: TransactionUpdate) -> Transaction:
        changes = data.changes()
        with atomic(self.session):
            txn = self.get(transaction_id)
            if "category_id" in changes:
                self.categories.get(changes["category_id"])
            if "amount" in changes:
                changes["amount"] = to_amount(changes["amount"])
            for field, value in changes.items():
                setattr(txn, field, value)
            self.session.flush()
            txn = self.get(transaction_id)
            if changes:
                logger.info(
                    "transaction_updated id=%s fields=%s",
                    transaction_id,
                    sorted(changes),
                )
        return txn

    def delete(self, transaction_id: int) -> DeleteResult:
        with atomic(self.session):
            result = self.session.execute(
                delete(Transaction).where(Transaction.id == transaction_id)
            )
            success = (result.rowcount or 0) > 0
        logger.info("transaction_deleted id=%s success=%s", transaction_id, success)
        return DeleteResult(success=success)


class ReportService:
    def __init__(self, session: Session, settings: Optional[Settings] = None) -> None:
        self.session = session
        self.settings = settings or get_settings()

    def summary(self, date_range: DateRangeIn) -> ReportSummary:
        stmt = (
            select(
                Transaction.type,
                func.sum(Transaction.amount).label("total_amount"),
                func.count(Transaction.id).label("transactions_count"),
            )
            .where(
                Transaction.date.between(date_range.start_date, date_range.end_date)
            )
            .group_by(Transaction.type)
        )
        totals: dict[TransactionType, Decimal] = {
            TransactionType.income: Decimal("0.00"),
            TransactionType.expense: Decimal("0.00"),
        }
        count = 0
        for row in self.session.execute(stmt).all():
            totals[row.type] = round2(row.total_amount or 0)
            count += int(row.transactions_count or 0)

        income = totals[TransactionType.income]
        expense = totals[TransactionType.expense]
        return ReportSummary(
            total_income=float(income),
            total_expense=float(expense),
            net_amount=float(round2(income - expense)),
            transactions_count=count,
            period=ReportPeriod(
                start_date=date_range.start_date, end_date=date_range.end_date
            ),
        )

    def category_report(self, date_range: DateRangeIn) -> list[CategoryReport]:
        stmt = (
            select(
                Transaction.category_id,
                Category.name.label("category_name"),
                Transaction.type,
                func.sum(Transaction.amount).label("total_amount"),
                func.count(Transaction.id).label("transactions_count"),
            )
            .join(Category, Category.id == Transaction.category_id)
            .where(
                Transaction.date.between(date_range.start_date, date_range.end_date)
            )
            .group_by(Transaction.category_id, Category.name, Transaction.type)
            .order_by(Transaction.category_id, Transaction.type)
        )
        return [
            CategoryReport(
                category_id=row.category_id,
                category_name=row.category_name,
                type=row.type,
                total_amount=float(round2(row.total_amount or 0)),
                transactions_count=int(row.transactions_count or 0),
            )
            for row in self.session.execute(stmt).all()
        ]

    def export_report(self, date_range: DateRangeIn) -> ExportResult:
        # Only the download location is produced; no spreadsheet body is encoded.
        filename = export_filename(date_range)
        summary = self.summary(date_range)
        logger.info(
            "report_export filename=%s transactions=%s",
            filename,
            summary.transactions_count,
        )
        return ExportResult(
            file_url=f"{self.settings.export_url_prefix}/{filename}",
            filename=filename,
        )
