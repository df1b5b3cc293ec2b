import logging
from datetime import date
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.orm import Session, sessionmaker

from config import get_settings
from database import get_sessionmaker
from periods import local_today
from scheduler import SchedulerManager
from schemas import (
    LineItemsIn,
    MerchantMatchIn,
    MerchantRuleIn,
    MerchantRuleUpdate,
    PriceHistoryIn,
)
from services import (
    DuplicateRuleError,
    ForecastService,
    LineItemService,
    MerchantRuleService,
    NotFoundError,
    PriceHistoryService,
    SpendingChangeService,
    UpstreamDataError,
    ValidationError,
    entry_to_dict,
    increment_match_count,
    jsonable,
    line_item_dict,
    price_entry,
)


logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Spend Insights")


def get_db():
    db = get_sessionmaker()()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> sessionmaker:
    return get_sessionmaker()


def get_today() -> date:
    return local_today()


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content={"success": False, "error": message}
    )


@app.exception_handler(ValidationError)
def validation_error_handler(request: Request, exc: ValidationError):
    return _error(400, str(exc))


@app.exception_handler(RequestValidationError)
def request_validation_handler(request: Request, exc: RequestValidationError):
    return _error(400, "Invalid request parameters")


@app.exception_handler(NotFoundError)
def not_found_handler(request: Request, exc: NotFoundError):
    return _error(404, str(exc))


@app.exception_handler(DuplicateRuleError)
def duplicate_rule_handler(request: Request, exc: DuplicateRuleError):
    return _error(409, str(exc))


@app.exception_handler(UpstreamDataError)
def upstream_error_handler(request: Request, exc: UpstreamDataError):
    logger.error(f"upstream_error: path={request.url.path} {exc}", exc_info=exc)
    return _error(500, "Internal server error")


@app.exception_handler(StarletteHTTPException)
def http_error_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"unhandled_error: path={request.url.path}", exc_info=exc)
    return _error(500, "Internal server error")


@app.get("/analytics/forecast")
def analytics_forecast(
    user_id: Optional[str] = None,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    data = ForecastService(db, user_id).forecast(today)
    return {"success": True, "data": data}


@app.get("/analytics/spending-change")
def analytics_spending_change(
    user_id: Optional[str] = None,
    period: Optional[str] = None,
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    data = SpendingChangeService(db, user_id).spending_change(period, today)
    return {"success": True, "data": data}


@app.get("/merchant-rules")
def list_merchant_rules(user_id: Optional[str] = None, db: Session = Depends(get_db)):
    service = MerchantRuleService(db, user_id)
    return {"success": True, "data": [service.to_dict(r) for r in service.list_all()]}


@app.post("/merchant-rules")
def create_merchant_rule(payload: MerchantRuleIn, db: Session = Depends(get_db)):
    if not payload.user_id or not (payload.merchant_pattern or "").strip():
        raise ValidationError("User ID and merchant pattern are required")
    service = MerchantRuleService(db, payload.user_id)
    rule = service.create(payload)
    return {"success": True, "data": service.to_dict(rule)}


@app.put("/merchant-rules/{rule_id}")
def update_merchant_rule(
    rule_id: int, payload: MerchantRuleUpdate, db: Session = Depends(get_db)
):
    service = MerchantRuleService(db, payload.user_id)
    rule = service.update(rule_id, payload)
    return {"success": True, "data": service.to_dict(rule)}


@app.delete("/merchant-rules/{rule_id}")
def delete_merchant_rule(
    rule_id: int, user_id: Optional[str] = None, db: Session = Depends(get_db)
):
    MerchantRuleService(db, user_id).delete(rule_id)
    return {"success": True}


@app.get("/merchant-rules/match")
def merchant_rule_exists(
    user_id: Optional[str] = None,
    pattern: Optional[str] = None,
    db: Session = Depends(get_db),
):
    if not user_id or not pattern:
        raise ValidationError("User ID and pattern are required")
    exists = MerchantRuleService(db, user_id).pattern_exists(pattern)
    return {"success": True, "exists": exists}


@app.post("/merchant-rules/match")
def match_merchant_rule(
    payload: MerchantMatchIn,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    if not payload.user_id or not (payload.vendor or "").strip():
        raise ValidationError("User ID and vendor are required")

    service = MerchantRuleService(db, payload.user_id)
    rules = service.active_rules()
    if not rules:
        return {"success": True, "match": None, "message": "No rules found for user"}

    rule = service.match(payload.vendor, rules)
    if rule is None:
        return {"success": True, "match": None, "message": "No matching rule found"}

    background_tasks.add_task(increment_match_count, session_factory, rule.id)
    return {
        "success": True,
        "match": {
            "rule_id": rule.id,
            "category_id": rule.category_id,
            "category_name": rule.category_name,
            "category_icon": rule.category_icon,
            "category_color": rule.category_color,
            "is_business": rule.is_business,
            "vendor_display_name": rule.vendor_display_name,
        },
    }


@app.get("/price-history")
def price_history(
    user_id: Optional[str] = None,
    item_name: Optional[str] = None,
    vendor: Optional[str] = None,
    mode: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    data = PriceHistoryService(db, user_id).report(
        mode, today, item_name=item_name, vendor=vendor, limit=limit
    )
    return {"success": True, "data": data}


@app.post("/price-history")
def add_price_history(payload: PriceHistoryIn, db: Session = Depends(get_db)):
    service = PriceHistoryService(db, payload.user_id)
    entry = service.add(payload)
    return {"success": True, "data": entry_to_dict(price_entry(entry))}


@app.delete("/price-history")
def delete_price_history(
    id: Optional[int] = None,
    user_id: Optional[str] = None,
    db: Session = Depends(get_db),
):
    service = PriceHistoryService(db, user_id)
    if id is None:
        raise ValidationError("ID is required")
    service.delete(id)
    return {"success": True}


@app.get("/line-items")
def list_line_items(
    user_id: Optional[str] = None,
    expense_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    items = LineItemService(db, user_id).items(expense_id)
    return {"success": True, "data": [line_item_dict(item) for item in items]}


@app.post("/line-items")
def save_line_items(payload: LineItemsIn, db: Session = Depends(get_db)):
    items, validation = LineItemService(db, payload.user_id).replace(payload)
    return {
        "success": True,
        "data": [line_item_dict(item) for item in items],
        "validation": jsonable(validation),
    }


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
