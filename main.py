import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import get_settings
from csv_utils import export_report_summary, export_transactions
from database import get_db
from models import TransactionType
from periods import resolve_period
from schemas import (
    CategoryIn,
    CategoryOut,
    CategoryReport,
    CategoryUpdate,
    DateRangeIn,
    DeleteResult,
    ExportResult,
    ReportSummary,
    TransactionIn,
    TransactionOut,
    TransactionQuery,
    TransactionUpdate,
)
from services import (
    CategoryService,
    NotFoundError,
    ReferentialConflictError,
    ReportService,
    TransactionService,
    export_filename,
)

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Personal Finance Tracker")


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(
        "store_error method=%s path=%s",
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return JSONResponse(status_code=500, content={"detail": "Storage error"})


def transaction_query_from_request(request: Request) -> TransactionQuery:
    params = request.query_params
    try:
        return TransactionQuery(
            start_date=params.get("start_date") or None,
            end_date=params.get("end_date") or None,
            type=params.get("type") or None,
            category_id=params.get("category_id") or None,
        )
    except ValidationError as exc:
        raise RequestValidationError(exc.errors()) from exc


def date_range_from_request(request: Request) -> DateRangeIn:
    params = request.query_params
    period_slug = params.get("period")
    start = params.get("start_date")
    end = params.get("end_date")
    if period_slug or (not start and not end):
        try:
            return resolve_period(period_slug, start, end).as_range()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
    try:
        return DateRangeIn(start_date=start, end_date=end)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors()) from exc


@app.get("/api/healthcheck")
def healthcheck():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.post("/api/categories", response_model=CategoryOut, status_code=201)
def create_category(data: CategoryIn, db: Session = Depends(get_db)):
    category = CategoryService(db).create(data)
    return CategoryOut.model_validate(category)


@app.get("/api/categories", response_model=list[CategoryOut])
def get_categories(
    type: Optional[TransactionType] = Query(default=None),
    db: Session = Depends(get_db),
):
    categories = CategoryService(db).list_all(type)
    return [CategoryOut.model_validate(c) for c in categories]


@app.patch("/api/categories/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: int, data: CategoryUpdate, db: Session = Depends(get_db)
):
    try:
        category = CategoryService(db).update(category_id, data)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return CategoryOut.model_validate(category)


@app.delete("/api/categories/{category_id}", response_model=DeleteResult)
def delete_category(category_id: int, db: Session = Depends(get_db)):
    try:
        return CategoryService(db).delete(category_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ReferentialConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@app.post("/api/transactions", response_model=TransactionOut, status_code=201)
def create_transaction(data: TransactionIn, db: Session = Depends(get_db)):
    try:
        txn = TransactionService(db).create(data)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return TransactionOut.model_validate(txn)


@app.get("/api/transactions", response_model=list[TransactionOut])
def get_transactions(request: Request, db: Session = Depends(get_db)):
    query = transaction_query_from_request(request)
    transactions = TransactionService(db).list(query)
    return [TransactionOut.model_validate(txn) for txn in transactions]


@app.get("/api/transactions/export.csv")
def export_transactions_csv(request: Request, db: Session = Depends(get_db)):
    query = transaction_query_from_request(request)
    transactions = TransactionService(db).list(query)
    csv_text = export_transactions(transactions)
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="transactions.csv"'},
    )


@app.patch("/api/transactions/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: int, data: TransactionUpdate, db: Session = Depends(get_db)
):
    try:
        txn = TransactionService(db).update(transaction_id, data)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return TransactionOut.model_validate(txn)


@app.delete("/api/transactions/{transaction_id}", response_model=DeleteResult)
def delete_transaction(transaction_id: int, db: Session = Depends(get_db)):
    return TransactionService(db).delete(transaction_id)


@app.get("/api/reports/summary", response_model=ReportSummary)
def get_report_summary(request: Request, db: Session = Depends(get_db)):
    date_range = date_range_from_request(request)
    return ReportService(db).summary(date_range)


@app.get("/api/reports/categories", response_model=list[CategoryReport])
def get_category_report(request: Request, db: Session = Depends(get_db)):
    date_range = date_range_from_request(request)
    return ReportService(db).category_report(date_range)


@app.get("/api/reports/export.csv")
def export_report_csv(request: Request, db: Session = Depends(get_db)):
    date_range = date_range_from_request(request)
    service = ReportService(db)
    csv_text = export_report_summary(
        service.summary(date_range), service.category_report(date_range)
    )
    filename = export_filename(date_range, extension="csv")
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/api/reports/export", response_model=ExportResult)
def export_report(data: DateRangeIn, db: Session = Depends(get_db)):
    return ReportService(db).export_report(data)


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
