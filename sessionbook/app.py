"""FastAPI application: HTTP + WebSocket endpoints for session booking.

Endpoints:

  GET  /health                                  Health check
  GET  /providers/{pid}/rates                   Bookable rates (optionally with credit counts)
  GET  /providers/{pid}/slots                   Open slots for a rate over a date range
  GET  /providers/{pid}/credits                 A counterparty's usable credit
  POST /bookings                                Commit a booking directly
  POST /bookings/{id}/cancel                    Cancel a booking
  POST /wizards                                 Start a booking wizard
  GET  /wizards/{id}                            Wizard state
  POST /wizards/{id}/{action}                   rate | payment | continue | slot | back |
                                                confirm | cancel | week/next | week/previous |
                                                week/current
  GET  /admin/bookings                          Bookings (operator key, or a provider key for its own)
  GET  /admin/wizards                           Open wizards (operator key)
  WS   /admin/providers/{pid}/feed              Live booking feed (operator or that provider's key)
"""

from __future__ import annotations

from dotenv import load_dotenv
load_dotenv()

import logging
import time
from datetime import date
from typing import Literal, Optional

# Configure root logger early so all app loggers have a handler and are
# visible when run via `uvicorn sessionbook.app:app`.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)-20s %(levelname)-7s %(message)s",
)

from fastapi import Depends, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from sessionbook import __version__
from sessionbook.auth import BookingAccess, booking_access, feed_access, require_operator
from sessionbook.config import settings
from sessionbook.errors import BookingError, UnknownWizard
from sessionbook.events import get_feed
from sessionbook.models.booking import BookingRequest, PaymentSource
from sessionbook.service import RATE_FILTERS, BookingCore
from sessionbook.slots import Slot
from sessionbook.timeutil import MINUTES_PER_DAY
from sessionbook.wizard import (
    BookingWizard,
    get_active_wizards,
    get_wizard,
    register_wizard,
    unregister_wizard,
)

log = logging.getLogger("sessionbook.app")

_START_TIME = time.time()


# ── Request bodies ────────────────────────────────────────────────

class NewWizardBody(BaseModel):
    provider_id: str
    counterparty_id: str
    kind: Literal["standard", "supervision"] = "standard"


class ChooseRateBody(BaseModel):
    rate_id: Optional[str] = None
    payment: str = "cash"


class ChoosePaymentBody(BaseModel):
    payment: str = "cash"


class ChooseSlotBody(BaseModel):
    date: date
    start_minutes: int = Field(ge=0, lt=MINUTES_PER_DAY)


def _payment(value: str) -> PaymentSource:
    try:
        return PaymentSource.parse(value)
    except ValueError as exc:
        raise BookingError(str(exc), code="InvalidPayment") from exc


def _slot_json(slot: Slot) -> dict:
    return {
        "date": slot.date.isoformat(),
        "start_minutes": slot.start_minutes,
        "duration_minutes": slot.duration_minutes,
        "request_only": slot.request_only,
        "label": slot.label(),
    }


def create_app(core: BookingCore | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if core is None:
        for warning in settings.validate_startup():
            log.warning(warning)
        core = BookingCore.from_settings(settings)

    app = FastAPI(
        title="Session Booking",
        description="Slot generation, credit resolution and booking commits",
        version=__version__,
    )
    app.state.core = core

    @app.exception_handler(BookingError)
    async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
        http_exc = exc.to_http_exception()
        return JSONResponse({"detail": http_exc.detail}, status_code=http_exc.status_code)

    # ── Health check ───────────────────────────────────────────

    @app.get("/health")
    async def health() -> JSONResponse:
        """Lightweight health check. Confirms the event loop is responsive."""
        uptime = round(time.time() - _START_TIME, 1)
        return JSONResponse({
            "status": "ok",
            "uptime": uptime,
            "providers": len(core.directory.provider_ids()),
            "bookings": len(core.bookings),
        })

    # ── Read-only queries ──────────────────────────────────────

    @app.get("/providers/{provider_id}/rates")
    async def list_rates(
        provider_id: str,
        kind: Literal["standard", "supervision", "all"] = "standard",
        counterparty_id: str = "",
    ):
        catalog = core.directory.get(provider_id).catalog
        rates = list(catalog) if kind == "all" else catalog.eligible(RATE_FILTERS[kind])
        out = []
        for rate in rates:
            entry = rate.model_dump(mode="json")
            if counterparty_id:
                sources = core.list_credit_sources(counterparty_id, provider_id, rate.id)
                entry["credit_remaining"] = sources.total_remaining
            out.append(entry)
        return {"provider_id": provider_id, "rates": out}

    @app.get("/providers/{provider_id}/slots")
    async def list_slots(
        provider_id: str,
        rate_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ):
        slots = core.list_available_slots(provider_id, rate_id, start, end)
        return {"slots": [_slot_json(s) for s in slots], "count": len(slots)}

    @app.get("/providers/{provider_id}/credits")
    async def list_credits(provider_id: str, counterparty_id: str, rate_id: Optional[str] = None):
        sources = core.list_credit_sources(counterparty_id, provider_id, rate_id)
        return {
            "courses": [c.model_dump(mode="json") for c in sources.courses],
            "tokens": [t.model_dump(mode="json") for t in sources.tokens],
            "total_remaining": sources.total_remaining,
        }

    # ── Direct commit ──────────────────────────────────────────

    @app.post("/bookings", status_code=201)
    async def commit_booking(body: BookingRequest):
        booking = core.committer.commit_request(body)
        return booking.model_dump(mode="json")

    @app.post("/bookings/{booking_id}/cancel")
    async def cancel_booking(booking_id: str):
        return core.cancel_booking(booking_id).model_dump(mode="json")

    # ── Booking wizard ─────────────────────────────────────────

    def _wizard(wizard_id: str) -> BookingWizard:
        wizard = get_wizard(wizard_id)
        if wizard is None:
            raise UnknownWizard("Wizard not found", details={"wizard_id": wizard_id})
        return wizard

    @app.post("/wizards", status_code=201)
    async def start_wizard(body: NewWizardBody):
        wizard = core.new_wizard(body.provider_id, body.counterparty_id, body.kind)
        register_wizard(wizard)
        data = wizard.to_dict()
        data["rates"] = [r.model_dump(mode="json") for r in wizard.rates()]
        credit = wizard.credit_sources()
        data["credit_remaining"] = credit.total_remaining
        return data

    @app.get("/wizards/{wizard_id}")
    async def get_wizard_state(wizard_id: str):
        return _wizard(wizard_id).to_dict()

    @app.delete("/wizards/{wizard_id}")
    async def discard_wizard(wizard_id: str):
        _wizard(wizard_id)
        unregister_wizard(wizard_id)
        return {"discarded": True}

    @app.post("/wizards/{wizard_id}/rate")
    async def wizard_rate(wizard_id: str, body: ChooseRateBody):
        wizard = _wizard(wizard_id)
        wizard.choose_rate(body.rate_id, _payment(body.payment))
        return wizard.to_dict()

    @app.post("/wizards/{wizard_id}/payment")
    async def wizard_payment(wizard_id: str, body: ChoosePaymentBody):
        wizard = _wizard(wizard_id)
        wizard.choose_payment(_payment(body.payment))
        return wizard.to_dict()

    @app.post("/wizards/{wizard_id}/continue")
    async def wizard_continue(wizard_id: str):
        wizard = _wizard(wizard_id)
        wizard.advance()
        return wizard.to_dict()

    @app.post("/wizards/{wizard_id}/slot")
    async def wizard_slot(wizard_id: str, body: ChooseSlotBody):
        wizard = _wizard(wizard_id)
        wizard.choose_slot(body.date, body.start_minutes)
        return wizard.to_dict()

    @app.post("/wizards/{wizard_id}/back")
    async def wizard_back(wizard_id: str):
        wizard = _wizard(wizard_id)
        wizard.back()
        return wizard.to_dict()

    @app.post("/wizards/{wizard_id}/week/next")
    async def wizard_next_week(wizard_id: str):
        wizard = _wizard(wizard_id)
        wizard.next_week()
        return wizard.to_dict()

    @app.post("/wizards/{wizard_id}/week/previous")
    async def wizard_previous_week(wizard_id: str):
        wizard = _wizard(wizard_id)
        wizard.previous_week()
        return wizard.to_dict()

    @app.post("/wizards/{wizard_id}/week/current")
    async def wizard_this_week(wizard_id: str):
        wizard = _wizard(wizard_id)
        wizard.this_week()
        return wizard.to_dict()

    @app.post("/wizards/{wizard_id}/confirm")
    async def wizard_confirm(wizard_id: str):
        wizard = _wizard(wizard_id)
        try:
            wizard.confirm()
        finally:
            if wizard.is_done:
                unregister_wizard(wizard_id)
        return wizard.to_dict()

    @app.post("/wizards/{wizard_id}/cancel")
    async def wizard_cancel(wizard_id: str):
        wizard = _wizard(wizard_id)
        try:
            wizard.cancel()
        finally:
            if wizard.is_done:
                unregister_wizard(wizard_id)
        return wizard.to_dict()

    # ── Booking views ──────────────────────────────────────────

    @app.get("/admin/bookings")
    async def admin_bookings(
        provider_id: Optional[str] = None,
        counterparty_id: Optional[str] = None,
        access: BookingAccess = Depends(booking_access),
    ):
        if not access.is_operator:
            if provider_id is not None and not access.allows(provider_id):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Key is not valid for provider {provider_id!r}.",
                )
            provider_id = access.provider_id
        bookings = core.bookings.all(provider_id, counterparty_id)
        return {"bookings": [b.model_dump(mode="json") for b in bookings], "count": len(bookings)}

    @app.get("/admin/wizards", dependencies=[Depends(require_operator)])
    async def admin_wizards():
        wizards = get_active_wizards()
        return {"wizards": [w.to_dict() for w in wizards.values()], "count": len(wizards)}

    @app.websocket("/admin/providers/{provider_id}/feed")
    async def booking_feed(
        websocket: WebSocket, provider_id: str, _access: BookingAccess = Depends(feed_access),
    ) -> None:
        """Stream booking events for one provider."""
        await websocket.accept()
        feed = get_feed(provider_id)
        queue = feed.subscribe()
        try:
            while True:
                event = await queue.get()
                await websocket.send_json(event)
        except WebSocketDisconnect:
            pass
        finally:
            feed.unsubscribe(queue)

    return app


# ── Module-level app instance for uvicorn ──────────────────────

app = create_app()


if __name__ == "__main__":
    import uvicorn

    log_config = uvicorn.config.LOGGING_CONFIG
    log_config["formatters"]["default"]["fmt"] = (
        "%(asctime)s %(name)-12s %(levelname)-8s %(message)s"
    )

    uvicorn.run(
        "sessionbook.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_config=log_config,
    )
