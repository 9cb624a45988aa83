"""Inbound payment gateway webhooks.

Every gateway posts to ``/webhooks/{gateway}``. The raw body is handed to
the webhook processor untouched because signatures are computed over the
exact bytes the provider sent. Paymob and PayTabs also send the customer's
browser back here with a GET after checkout.
"""

from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, RedirectResponse

from paybridge.api.deps import Inject
from paybridge.core.config import settings
from paybridge.core.logging import logger
from paybridge.domains.payments.exceptions import (
    GatewayNotConfiguredError,
    InvalidPayloadError,
    InvalidSignatureError,
    UnknownGatewayError,
)
from paybridge.domains.payments.protocols import (
    GatewayRegistryProtocol,
    SupportsRedirectVerification,
)
from paybridge.domains.webhooks.protocols import WebhookProcessorProtocol
from paybridge.schemas.payment import GatewayName

router = APIRouter()

webhook_logger = logger.with_prefix("Webhooks: ").with_context(component="webhook_endpoint")

# Header carrying the signature, per gateway. Paymob signs in the query string.
SIGNATURE_HEADERS = {
    GatewayName.STRIPE.value: "stripe-signature",
    GatewayName.PADDLE.value: "paddle-signature",
    GatewayName.PAYTABS.value: "signature",
}


def extract_signature(gateway: str, request: Request) -> Optional[str]:
    """Pull the signature for ``gateway`` out of the request.

    Returns None when the gateway sends none; Paymob and PayTabs verifiers
    then fall back to the value embedded in the body.
    """
    if gateway.lower() == GatewayName.PAYMOB.value:
        return request.query_params.get("hmac")
    header = SIGNATURE_HEADERS.get(gateway.lower())
    return request.headers.get(header) if header else None


def _pricing_redirect(**params: str) -> RedirectResponse:
    return RedirectResponse(f"{settings.APP_URL}/pricing?{urlencode(params)}")


@router.post("/{gateway}")
async def receive_webhook(
    gateway: str,
    request: Request,
    processor: WebhookProcessorProtocol = Inject(WebhookProcessorProtocol),
) -> JSONResponse:
    """Handle a webhook delivery from any registered gateway.

    Returns:
        200 ``{"received": true}`` once applied, with ``"status": "duplicate"``
        for an event that was already claimed; 400 for a bad signature or
        payload; 404 for an unknown gateway; 503 when the gateway has no
        credentials; 500 when applying the event failed.
    """
    payload = await request.body()
    signature = extract_signature(gateway, request)

    try:
        ack = await processor.process_webhook(gateway, payload, signature)
    except UnknownGatewayError as e:
        return JSONResponse(status_code=404, content={"error": e.message})
    except GatewayNotConfiguredError as e:
        return JSONResponse(status_code=503, content={"error": e.message})
    except InvalidSignatureError:
        return JSONResponse(status_code=400, content={"error": "Invalid signature"})
    except InvalidPayloadError:
        return JSONResponse(status_code=400, content={"error": "Invalid payload"})
    except Exception as e:
        webhook_logger.with_context(gateway=gateway).error(f"Webhook handler failed: {e}")
        return JSONResponse(status_code=500, content={"error": "Webhook handler failed"})

    content = {"received": True}
    if ack.is_duplicate:
        content["status"] = "duplicate"
    return JSONResponse(status_code=200, content=content)


@router.get("/paymob")
async def paymob_redirect(
    request: Request,
    registry: GatewayRegistryProtocol = Inject(GatewayRegistryProtocol),
) -> RedirectResponse:
    """Return the customer to the pricing page after a Paymob checkout.

    The query-string HMAC is checked when one is present and Paymob is
    configured. This only decides where the browser lands; subscription
    state is changed by the POST callback alone.
    """
    params = dict(request.query_params)
    transaction_id = params.get("id", "")
    gateway = registry.get(GatewayName.PAYMOB)

    if (
        params.get("hmac")
        and gateway.is_configured()
        and isinstance(gateway, SupportsRedirectVerification)
        and not gateway.verify_redirect(params)
    ):
        webhook_logger.with_context(gateway="paymob", event_id=transaction_id).error(
            "Invalid HMAC signature on redirect"
        )
        return _pricing_redirect(error="invalid_signature")

    if params.get("success") == "true":
        return _pricing_redirect(success="true", gateway="paymob", transaction=transaction_id)
    return _pricing_redirect(error="payment_failed", gateway="paymob")


@router.get("/paytabs")
async def paytabs_redirect(request: Request) -> RedirectResponse:
    """Return the customer to the pricing page after a PayTabs checkout.

    ``respStatus`` ``A`` means authorized.
    """
    resp_status = request.query_params.get("respStatus", "")
    tran_ref = request.query_params.get("tranRef", "")
    webhook_logger.with_context(gateway="paytabs", event_id=tran_ref).info(
        f"Redirect return with status {resp_status or 'missing'}"
    )
    if resp_status == "A":
        return _pricing_redirect(success="true", gateway="paytabs", transaction=tran_ref)
    return _pricing_redirect(error="payment_failed", gateway="paytabs", status=resp_status)
