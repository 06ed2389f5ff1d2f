"""FastAPI JSON API for ChoreBank.

The acting role lives in a signed Starlette session: children are the
default, parent mode is entered through the parent passcode (when one is
set). Every route delegates to the module level :data:`bank`.

Serve with ``uvicorn chorebank.webapp.application:app``.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from starlette.middleware.sessions import SessionMiddleware

from ..clock import SystemClock
from ..exceptions import (
    ChoreBankError,
    ChoreNotFoundError,
    PasscodeLockedError,
    PersistenceError,
    ProfileNotFoundError,
    ValidationError,
)
from ..ledger import EarningsLedger
from ..models import Actor, CompletionSnapshot, EarningsRecord
from ..ops import StructuredLogger
from ..service import ChoreBank
from ..store import Store
from .config import LOG_PATH, PAYDAY_TICK_SECONDS, ROLE_SESSION_KEY, SCHEDULER_ENABLED, SESSION_SECRET
from .persistence import KeyValueStorage, create_db_and_tables, engine

_time_provider: Callable[[], datetime] = datetime.now


def now_local() -> datetime:
    """Return naive local time using the configured provider."""

    return _time_provider()


def build_bank(storage: KeyValueStorage, *, logger: StructuredLogger) -> ChoreBank:
    """Load, migrate and wire a :class:`ChoreBank` to ``storage``."""

    blob = storage.load_blob()
    store = Store.load(blob)
    report = store.load_report
    if report is not None and report.failed:
        storage.backup_collections(blob, report.failed)
    bank = ChoreBank(store, clock=SystemClock(now_local), logger=logger, persist=storage.save_blob)
    if report is not None and (report.applied or report.failed or set(blob) != set(store.serialize())):
        bank.flush()
    return bank


logger = StructuredLogger(path=Path(LOG_PATH) if LOG_PATH else None)
create_db_and_tables()
storage = KeyValueStorage(engine, logger=logger, now=now_local)
bank = build_bank(storage, logger=logger)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    stop_event = asyncio.Event()
    task: Optional[asyncio.Task] = None
    if SCHEDULER_ENABLED:
        task = asyncio.create_task(bank.scheduler.run(stop_event, interval=PAYDAY_TICK_SECONDS))
    try:
        yield
    finally:
        stop_event.set()
        if task is not None:
            await task


# ---------------------------------------------------------------------------
# FastAPI application setup
# ---------------------------------------------------------------------------
app = FastAPI(title="Chore Bank", lifespan=lifespan)
app.add_middleware(
    SessionMiddleware,
    secret_key=SESSION_SECRET,
    same_site="lax",
    max_age=None,
)


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": type(exc).__name__, "detail": str(exc)})


@app.exception_handler(ChoreBankError)
async def handle_chorebank_error(_request: Request, exc: ChoreBankError) -> JSONResponse:
    if isinstance(exc, (ProfileNotFoundError, ChoreNotFoundError)):
        return _error(404, exc)
    if isinstance(exc, ValidationError):
        return _error(400, exc)
    if isinstance(exc, PasscodeLockedError):
        return _error(429, exc)
    if isinstance(exc, PersistenceError):
        return _error(503, exc)
    return _error(409, exc)


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------
class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PasscodeBody(CamelModel):
    passcode: str = ""


class PasscodeUpdate(CamelModel):
    passcode: Optional[str] = None


class PayDayBody(CamelModel):
    mode: str = "anytime"
    day: Optional[str] = None
    time: Optional[str] = None


class ProfileCreate(CamelModel):
    name: str
    image: Optional[str] = None
    pay_day_config: Optional[PayDayBody] = None
    theme: str = "light"
    show_potential_earnings: bool = False


class ProfileUpdate(CamelModel):
    name: Optional[str] = None
    image: Optional[str] = None
    pay_day_config: Optional[PayDayBody] = None
    theme: Optional[str] = None
    parent_view_theme: Optional[str] = None
    has_seen_theme_prompt: Optional[bool] = None
    show_potential_earnings: Optional[bool] = None


class ChoreCreate(CamelModel):
    name: str
    value: Optional[int] = None
    days: List[str] = Field(default_factory=list)
    category: Optional[str] = None
    icon: Optional[str] = None
    note: Optional[str] = None
    one_off_date: Optional[date] = None


class ChoreUpdate(CamelModel):
    name: Optional[str] = None
    value: Optional[int] = None
    days: Optional[List[str]] = None
    category: Optional[str] = None
    icon: Optional[str] = None
    note: Optional[str] = None
    one_off_date: Optional[date] = None


class ReorderBody(CamelModel):
    dragged_id: str
    target_id: str


class ToggleBody(CamelModel):
    day: date = Field(alias="date")


class ReviewEntry(CamelModel):
    chore_id: str
    date: str
    is_completed: bool


class ReviewBody(CamelModel):
    entries: List[ReviewEntry] = Field(default_factory=list)
    note: Optional[str] = None


class AmountBody(CamelModel):
    amount: int


class BonusBody(CamelModel):
    profile_ids: List[str]
    amount: int
    note: Optional[str] = None


class SettingsUpdate(CamelModel):
    theme: Optional[str] = None
    default_chore_value: Optional[int] = None
    default_bonus_value: Optional[int] = None
    custom_categories: Optional[List[str]] = None


# ---------------------------------------------------------------------------
# Session roles
# ---------------------------------------------------------------------------
def current_actor(request: Request) -> Actor:
    role = request.session.get(ROLE_SESSION_KEY)
    return Actor.PARENT if role == Actor.PARENT.value else Actor.CHILD


def require_parent(request: Request) -> Actor:
    actor = current_actor(request)
    if actor is not Actor.PARENT:
        raise HTTPException(status_code=403, detail="Parent mode required.")
    return actor


def _explicit(body: BaseModel) -> Dict[str, Any]:
    return body.model_dump(exclude_unset=True)


def _find_pending(profile_id: str, record_id: str) -> EarningsRecord:
    for record in bank.pending_cash_outs(profile_id):
        if record.id == record_id:
            return record
    raise HTTPException(status_code=404, detail=f"Unknown cash-out request '{record_id}'.")


def _reviewed(record: EarningsRecord, body: ReviewBody) -> EarningsRecord:
    flags = {(entry.chore_id, entry.date): entry.is_completed for entry in body.entries}
    reviewed = EarningsLedger.review_cash_out(record, flags)
    if body.note:
        reviewed.note = body.note
    return reviewed


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health")
def health() -> Dict[str, Any]:
    return {"status": "ok", "profiles": len(bank.profiles()), "time": now_local().isoformat()}


@app.get("/session")
def session_info(request: Request) -> Dict[str, Any]:
    return {"role": current_actor(request).value, "hasPasscode": bank.has_passcode()}


@app.post("/session/parent")
def enter_parent_mode(request: Request, body: PasscodeBody) -> Dict[str, Any]:
    if not bank.verify_passcode(body.passcode):
        raise HTTPException(status_code=401, detail="Incorrect passcode.")
    request.session[ROLE_SESSION_KEY] = Actor.PARENT.value
    return {"role": Actor.PARENT.value}


@app.post("/session/child")
def enter_child_mode(request: Request) -> Dict[str, Any]:
    request.session[ROLE_SESSION_KEY] = Actor.CHILD.value
    return {"role": Actor.CHILD.value}


@app.get("/profiles")
def list_profiles() -> List[Dict[str, Any]]:
    return [profile.as_dict() for profile in bank.profiles()]


@app.post("/profiles", status_code=201)
def create_profile(body: ProfileCreate, _parent: Actor = Depends(require_parent)) -> Dict[str, Any]:
    profile = bank.add_profile(
        body.name,
        image=body.image,
        pay_day_config=body.pay_day_config.model_dump(exclude_none=True) if body.pay_day_config else None,
        theme=body.theme,
        show_potential_earnings=body.show_potential_earnings,
    )
    return profile.as_dict()


@app.patch("/profiles/{profile_id}")
def patch_profile(profile_id: str, body: ProfileUpdate, request: Request) -> Dict[str, Any]:
    changes = _explicit(body)
    child_fields = {"theme", "has_seen_theme_prompt"}
    if current_actor(request) is not Actor.PARENT and not set(changes) <= child_fields:
        raise HTTPException(status_code=403, detail="Parent mode required.")
    if "pay_day_config" in changes and changes["pay_day_config"] is not None:
        changes["pay_day_config"] = {key: value for key, value in changes["pay_day_config"].items() if value}
    return bank.update_profile(profile_id, **changes).as_dict()


@app.delete("/profiles/{profile_id}")
def remove_profile(profile_id: str, _parent: Actor = Depends(require_parent)) -> Dict[str, Any]:
    return {"deleted": bank.delete_profile(profile_id).id}


@app.get("/profiles/{profile_id}/chores")
def list_chores(profile_id: str, day: Optional[date] = None) -> List[Dict[str, Any]]:
    return [chore.as_dict() for chore in bank.chores_for(profile_id, day)]


@app.post("/profiles/{profile_id}/chores", status_code=201)
def create_chore(profile_id: str, body: ChoreCreate, _parent: Actor = Depends(require_parent)) -> Dict[str, Any]:
    chore = bank.add_chore(
        profile_id,
        body.name,
        value=body.value,
        days=body.days,
        category=body.category,
        icon=body.icon,
        note=body.note,
        one_off_date=body.one_off_date,
    )
    return chore.as_dict()


@app.patch("/profiles/{profile_id}/chores/{chore_id}")
def patch_chore(
    profile_id: str, chore_id: str, body: ChoreUpdate, _parent: Actor = Depends(require_parent)
) -> Dict[str, Any]:
    return bank.update_chore(profile_id, chore_id, **_explicit(body)).as_dict()


@app.delete("/profiles/{profile_id}/chores/{chore_id}")
def remove_chore(profile_id: str, chore_id: str, _parent: Actor = Depends(require_parent)) -> Dict[str, Any]:
    return {"deleted": bank.delete_chore(profile_id, chore_id).id}


@app.post("/profiles/{profile_id}/chores/reorder")
def reorder_chores(profile_id: str, body: ReorderBody, _parent: Actor = Depends(require_parent)) -> Dict[str, Any]:
    return {"moved": bank.reorder_chores(profile_id, body.dragged_id, body.target_id)}


@app.post("/profiles/{profile_id}/chores/{chore_id}/toggle")
def toggle_chore(profile_id: str, chore_id: str, body: ToggleBody, request: Request) -> Dict[str, Any]:
    outcome = bank.toggle_completion(profile_id, chore_id, body.day, actor=current_actor(request))
    return {"outcome": outcome.value, "earnings": bank.current_earnings(profile_id)}


@app.get("/profiles/{profile_id}/earnings")
def earnings_summary(profile_id: str, request: Request) -> Dict[str, Any]:
    actor = current_actor(request)
    return {
        "current": bank.current_earnings(profile_id),
        "potential": bank.project_potential_earnings(profile_id),
        "cashOutAvailable": bank.cash_out_available(profile_id, actor=actor),
        "pendingCashOuts": len(bank.pending_cash_outs(profile_id)),
    }


@app.post("/profiles/{profile_id}/cash-out")
def request_cash_out(profile_id: str, request: Request) -> Dict[str, Any]:
    if not bank.cash_out_available(profile_id, actor=current_actor(request)):
        raise HTTPException(status_code=403, detail="Cash out is not available today.")
    record = bank.request_cash_out(profile_id)
    return {"record": record.as_dict() if record else None}


@app.get("/profiles/{profile_id}/cash-outs")
def pending_cash_outs(profile_id: str, _parent: Actor = Depends(require_parent)) -> List[Dict[str, Any]]:
    return [record.as_dict() for record in bank.pending_cash_outs(profile_id)]


@app.get("/profiles/{profile_id}/cash-outs/unseen")
def unseen_cash_outs(profile_id: str, _parent: Actor = Depends(require_parent)) -> List[Dict[str, Any]]:
    return [record.as_dict() for record in bank.unseen_cash_outs(profile_id)]


@app.post("/profiles/{profile_id}/cash-outs/seen")
def mark_cash_outs_seen(profile_id: str, _parent: Actor = Depends(require_parent)) -> Dict[str, Any]:
    return {"marked": bank.mark_cash_outs_seen(profile_id)}


@app.post("/profiles/{profile_id}/cash-outs/{record_id}/review")
def review_cash_out(
    profile_id: str, record_id: str, body: ReviewBody, _parent: Actor = Depends(require_parent)
) -> Dict[str, Any]:
    return _reviewed(_find_pending(profile_id, record_id), body).as_dict()


@app.post("/profiles/{profile_id}/cash-outs/{record_id}/approve")
def approve_cash_out(
    profile_id: str, record_id: str, body: ReviewBody, _parent: Actor = Depends(require_parent)
) -> Dict[str, Any]:
    final = _reviewed(_find_pending(profile_id, record_id), body)
    known = {entry.key for entry in final.completions_snapshot or ()}
    extra = [
        CompletionSnapshot(chore_id=entry.chore_id, chore_name="", chore_value=0, date=entry.date)
        for entry in body.entries
        if (entry.chore_id, entry.date) not in known
    ]
    if extra:
        final.completions_snapshot = list(final.completions_snapshot or ()) + extra
    record = bank.approve_reviewed_cash_out(profile_id, final)
    return {"record": record.as_dict() if record else None}


@app.get("/profiles/{profile_id}/history")
def earnings_history(profile_id: str) -> List[Dict[str, Any]]:
    return [record.as_dict() for record in bank.earnings_history(profile_id)]


@app.patch("/profiles/{profile_id}/history/{record_id}")
def patch_history_amount(
    profile_id: str, record_id: str, body: AmountBody, _parent: Actor = Depends(require_parent)
) -> Dict[str, Any]:
    return bank.update_history_amount(profile_id, record_id, body.amount).as_dict()


@app.get("/profiles/{profile_id}/totals")
def earnings_totals(profile_id: str, _parent: Actor = Depends(require_parent)) -> Dict[str, int]:
    return bank.earnings_totals(profile_id).as_dict()


@app.get("/profiles/{profile_id}/graph")
def earnings_graph(
    profile_id: str, period: str = "week", _parent: Actor = Depends(require_parent)
) -> List[Dict[str, Any]]:
    return [{"date": point.date, "total": point.total} for point in bank.earnings_graph(profile_id, period)]


@app.get("/profiles/{profile_id}/past-approvals")
def past_approvals(profile_id: str) -> List[Dict[str, Any]]:
    return [entry.as_dict() for entry in bank.past_chore_approvals(profile_id)]


@app.post("/profiles/{profile_id}/past-approvals/approve-all")
def approve_all_past(profile_id: str, _parent: Actor = Depends(require_parent)) -> Dict[str, Any]:
    return {"approved": [entry.id for entry in bank.approve_all_past_chores(profile_id)]}


@app.post("/profiles/{profile_id}/past-approvals/dismiss-all")
def dismiss_all_past(profile_id: str, _parent: Actor = Depends(require_parent)) -> Dict[str, Any]:
    return {"dismissed": [entry.id for entry in bank.dismiss_all_past_chores(profile_id)]}


@app.post("/profiles/{profile_id}/past-approvals/{approval_id}/approve")
def approve_past(profile_id: str, approval_id: str, _parent: Actor = Depends(require_parent)) -> Dict[str, Any]:
    entry = bank.approve_past_chore(profile_id, approval_id)
    return {"approved": entry.id if entry else None}


@app.post("/profiles/{profile_id}/past-approvals/{approval_id}/dismiss")
def dismiss_past(profile_id: str, approval_id: str, _parent: Actor = Depends(require_parent)) -> Dict[str, Any]:
    entry = bank.dismiss_past_chore(profile_id, approval_id)
    return {"dismissed": entry.id if entry else None}


@app.post("/bonuses", status_code=201)
def award_bonus(body: BonusBody, _parent: Actor = Depends(require_parent)) -> Dict[str, Any]:
    chores = bank.award_bonus(body.profile_ids, body.amount, body.note)
    return {"chores": [chore.as_dict() for chore in chores]}


@app.post("/profiles/{profile_id}/bonus-notifications/next")
def next_bonus_notification(profile_id: str) -> Dict[str, Any]:
    notification = bank.consume_next_bonus_notification(profile_id)
    return {"notification": notification.as_dict() if notification else None}


@app.get("/settings")
def get_settings(_parent: Actor = Depends(require_parent)) -> Dict[str, Any]:
    payload = bank.parent_settings().as_dict()
    payload["hasPasscode"] = bool(payload.pop("passcode"))
    return payload


@app.patch("/settings")
def patch_settings(body: SettingsUpdate, _parent: Actor = Depends(require_parent)) -> Dict[str, Any]:
    payload = bank.update_parent_settings(**_explicit(body)).as_dict()
    payload["hasPasscode"] = bool(payload.pop("passcode"))
    return payload


@app.put("/settings/passcode")
def put_passcode(body: PasscodeUpdate, _parent: Actor = Depends(require_parent)) -> Dict[str, Any]:
    bank.set_passcode(body.passcode)
    return {"hasPasscode": bank.has_passcode()}


@app.get("/logs")
def recent_logs(limit: int = 50, _parent: Actor = Depends(require_parent)) -> List[Dict[str, Any]]:
    return [dict(entry) for entry in logger.tail(limit)]


@app.get("/audit")
def audit_trail(
    profile: Optional[str] = None, action: Optional[str] = None, _parent: Actor = Depends(require_parent)
) -> List[Dict[str, Any]]:
    return [event.as_dict() for event in bank.audit_log.entries(action=action, profile=profile)]


__all__ = ["app", "bank", "build_bank", "logger", "now_local", "storage"]
