"""Price-guarded redirect endpoints.

``GET /offer/{offer_id}`` re-verifies the price behind a listing click and
either redirects, asks the user to confirm a changed price, or answers a
typed error. ``POST /offer/{offer_id}/confirm`` completes the confirmation.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response

from src.dependencies import get_redirect_guard
from src.models.guard_models import (
    ConfirmRequiredResponse,
    ErrorCode,
    GuardErrorResponse,
)
from src.services.redirect_guard import DecisionKind, GuardDecision, RedirectGuard
from src.services.rendering import (
    render_confirm_page,
    render_error_page,
    wants_html,
)

logger = logging.getLogger("redirect.controllers")

redirect_router = APIRouter(prefix="/offer", tags=["Redirect"])

NO_STORE_HEADERS = {"Cache-Control": "no-store"}
_FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def decision_to_response(request: Request, decision: GuardDecision) -> Response:
    """Translate a guard decision into its HTTP shape."""
    if decision.kind == DecisionKind.REDIRECT and decision.redirect_url:
        return RedirectResponse(
            url=decision.redirect_url, status_code=302, headers=NO_STORE_HEADERS
        )

    html = wants_html(request.headers.get("accept"))

    if decision.kind == DecisionKind.CONFIRM and decision.confirm_token:
        confirm_url = str(request.url_for("confirm_offer", offer_id=decision.offer_id))
        if html:
            return HTMLResponse(
                render_confirm_page(
                    decision.offer_id,
                    decision.old_price or 0,
                    decision.new_price or 0,
                    confirm_url,
                    decision.confirm_token,
                ),
                headers=NO_STORE_HEADERS,
            )
        body = ConfirmRequiredResponse(
            offer_id=decision.offer_id,
            old_price=decision.old_price or 0,
            new_price=decision.new_price or 0,
            confirm_token=decision.confirm_token,
            confirm_url=confirm_url,
        )
        return JSONResponse(body.model_dump(by_alias=True), headers=NO_STORE_HEADERS)

    error = GuardErrorResponse(
        error=decision.message or "",
        code=decision.code or ErrorCode.VERIFY_FAILED,
        offer_id=decision.offer_id,
    )
    if html:
        return HTMLResponse(
            render_error_page(error.code.value, error.error),
            status_code=409,
            headers=NO_STORE_HEADERS,
        )
    return JSONResponse(
        error.model_dump(by_alias=True, mode="json"),
        status_code=409,
        headers=NO_STORE_HEADERS,
    )


async def read_confirm_token(request: Request) -> Optional[str]:
    """Pick ``confirmToken`` from a JSON body, a form body or the query string."""
    token: Optional[str] = None
    content_type = request.headers.get("content-type", "").lower()

    try:
        if content_type.startswith("application/json"):
            body = await request.json()
            if isinstance(body, dict) and body.get("confirmToken"):
                token = str(body["confirmToken"])
        elif content_type.startswith(_FORM_TYPES):
            form = await request.form()
            value = form.get("confirmToken")
            if isinstance(value, str) and value:
                token = value
    except ValueError:
        logger.info("Unreadable confirm body on %s", request.url.path)

    return token or request.query_params.get("confirmToken") or None


@redirect_router.get(
    "/{offer_id}",
    name="redirect_offer",
    responses={
        200: {"model": ConfirmRequiredResponse, "description": "Price changed"},
        302: {"description": "Redirect to the retailer"},
        409: {"model": GuardErrorResponse, "description": "Redirect refused"},
    },
)
async def redirect_offer(
    offer_id: str,
    request: Request,
    price_token: Optional[str] = Query(default=None, alias="priceToken"),
    guard: RedirectGuard = Depends(get_redirect_guard),
) -> Response:
    """Verify the listed price and send the user on (or ask to confirm)."""
    decision = await guard.handle_click(offer_id, price_token)
    return decision_to_response(request, decision)


@redirect_router.post(
    "/{offer_id}/confirm",
    name="confirm_offer",
    responses={
        200: {"model": ConfirmRequiredResponse, "description": "Price moved again"},
        302: {"description": "Redirect to the retailer"},
        409: {"model": GuardErrorResponse, "description": "Redirect refused"},
    },
)
async def confirm_offer(
    offer_id: str,
    request: Request,
    guard: RedirectGuard = Depends(get_redirect_guard),
) -> Response:
    """Redirect after the user accepted a changed price."""
    confirm_token = await read_confirm_token(request)
    decision = await guard.handle_confirm(offer_id, confirm_token)
    return decision_to_response(request, decision)
