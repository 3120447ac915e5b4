"""
Billing API Endpoints

Coach-managed Stripe billing: customers, cards, client subscriptions,
products, and the Stripe webhook that keeps the local mirror current.
"""
from __future__ import annotations

from datetime import date
import logging
from typing import Optional

import stripe
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from core.auth import get_coach_client, get_current_user, require_coach
from core.database import get_db
from core.exceptions import NotFoundError, ServiceUnavailableError
from models import User
from schemas import ApiModel
from services.stripe_service import StripeService, process_webhook_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["billing"])


def get_stripe_service() -> StripeService:
    try:
        return StripeService()
    except RuntimeError as e:
        raise ServiceUnavailableError(str(e))


class PaymentMethodRequest(ApiModel):
    payment_method_id: str
    set_as_default: bool = False


class CreateClientSubscriptionRequest(ApiModel):
    client_id: str
    price_id: str
    tax_percentage: Optional[float] = None
    start_date: Optional[date] = None
    notes: Optional[str] = None


class ClientRequest(ApiModel):
    client_id: str


class ClientSubscriptionRequest(ApiModel):
    client_id: str
    subscription_id: str


class CreateProductRequest(ApiModel):
    name: str
    amount: float
    description: Optional[str] = None
    currency: str = "usd"
    interval: str = "month"
    interval_count: int = 1


class ArchiveProductRequest(ApiModel):
    product_id: str
    archive: bool = True


@router.post("/create-customer")
def create_customer(
    current_user: User = Depends(get_current_user),
    svc: StripeService = Depends(get_stripe_service),
    db: Session = Depends(get_db),
):
    return {"customerId": svc.get_or_create_customer(db, user=current_user)}


@router.get("/payment-methods")
def list_payment_methods(
    current_user: User = Depends(get_current_user),
    svc: StripeService = Depends(get_stripe_service),
    db: Session = Depends(get_db),
):
    customer_id = svc.get_or_create_customer(db, user=current_user)
    return {"paymentMethods": svc.list_payment_methods(customer_id)}


@router.post("/payment-methods")
def attach_payment_method(
    request: PaymentMethodRequest,
    current_user: User = Depends(get_current_user),
    svc: StripeService = Depends(get_stripe_service),
    db: Session = Depends(get_db),
):
    customer_id = svc.get_or_create_customer(db, user=current_user)
    svc.attach_payment_method(customer_id, request.payment_method_id, set_as_default=request.set_as_default)
    return {"success": True}


@router.patch("/payment-methods")
def set_default_payment_method(
    request: PaymentMethodRequest,
    current_user: User = Depends(get_current_user),
    svc: StripeService = Depends(get_stripe_service),
    db: Session = Depends(get_db),
):
    """Make a card the default; an outstanding invoice is retried with it."""
    customer_id = svc.get_or_create_customer(db, user=current_user)
    invoice_settings = svc.set_default_payment_method(customer_id, request.payment_method_id)
    return {"success": True, "invoice_settings": invoice_settings}


@router.delete("/payment-methods")
def detach_payment_method(
    request: PaymentMethodRequest,
    current_user: User = Depends(get_current_user),
    svc: StripeService = Depends(get_stripe_service),
):
    svc.detach_payment_method(request.payment_method_id)
    return {"success": True}


@router.post("/create-client-subscription")
def create_client_subscription(
    request: CreateClientSubscriptionRequest,
    coach: User = Depends(require_coach),
    svc: StripeService = Depends(get_stripe_service),
    db: Session = Depends(get_db),
):
    client = get_coach_client(db, coach, request.client_id)
    subscription, message = svc.create_client_subscription(
        db,
        coach=coach,
        client=client,
        price_id=request.price_id,
        tax_percentage=request.tax_percentage,
        start_date=request.start_date,
        notes=request.notes,
    )
    return {"success": True, "subscription": subscription, "message": message}


@router.post("/cancel-subscription")
def cancel_subscription(
    request: ClientRequest,
    coach: User = Depends(require_coach),
    svc: StripeService = Depends(get_stripe_service),
    db: Session = Depends(get_db),
):
    client = get_coach_client(db, coach, request.client_id)
    svc.cancel_client_subscriptions(db, client=client)
    return {
        "success": True,
        "message": f"Subscription for {client.name} has been cancelled. The client remains active and can still access the app.",
    }


@router.post("/reactivate-subscription")
def reactivate_subscription(
    request: ClientSubscriptionRequest,
    coach: User = Depends(require_coach),
    svc: StripeService = Depends(get_stripe_service),
    db: Session = Depends(get_db),
):
    client = get_coach_client(db, coach, request.client_id)
    subscription = svc.reactivate_subscription(db, coach=coach, client=client, subscription_id=request.subscription_id)
    return {"success": True, "subscription": subscription}


@router.post("/retry-subscription-payment")
def retry_subscription_payment(
    request: ClientSubscriptionRequest,
    coach: User = Depends(require_coach),
    svc: StripeService = Depends(get_stripe_service),
    db: Session = Depends(get_db),
):
    client = get_coach_client(db, coach, request.client_id)
    subscription, message = svc.retry_subscription_payment(client=client, subscription_id=request.subscription_id)
    return {"success": True, "subscription": subscription, "message": message}


@router.post("/pay-latest-invoice")
def pay_latest_invoice(
    current_user: User = Depends(get_current_user),
    svc: StripeService = Depends(get_stripe_service),
):
    if not current_user.stripe_customer_id:
        raise NotFoundError("Stripe customer not found")
    return {"success": True, "status": svc.pay_latest_invoice(customer_id=current_user.stripe_customer_id)}


@router.get("/subscription-info")
def subscription_info(
    current_user: User = Depends(get_current_user),
    svc: StripeService = Depends(get_stripe_service),
):
    """The caller's subscription, last 10 invoices and any open invoice."""
    if not current_user.stripe_customer_id:
        return {"subscription": None, "billingHistory": [], "currentInvoice": None}
    return svc.billing_overview(current_user.stripe_customer_id)


@router.get("/client-subscription-info")
def client_subscription_info(
    client_id: str = Query(..., alias="clientId"),
    coach: User = Depends(require_coach),
    svc: StripeService = Depends(get_stripe_service),
    db: Session = Depends(get_db),
):
    client = get_coach_client(db, coach, client_id)
    subscription = None
    payment_methods: list = []
    if client.stripe_customer_id:
        try:
            subscription = svc.subscription_info(client.stripe_customer_id)
            payment_methods = svc.list_payment_methods(client.stripe_customer_id)
        except stripe.StripeError as e:
            # The page still renders for a client whose Stripe lookup fails.
            logger.warning(f"Subscription lookup failed for client {client.id}: {e}")
    return {
        "client": {"id": str(client.id), "name": client.name, "email": client.email},
        "subscription": subscription,
        "paymentMethods": payment_methods,
    }


@router.get("/stripe-products")
def list_stripe_products(
    coach: User = Depends(require_coach),
    svc: StripeService = Depends(get_stripe_service),
    db: Session = Depends(get_db),
):
    return {"products": svc.list_products(db, coach=coach)}


@router.post("/stripe-products")
def create_stripe_product(
    request: CreateProductRequest,
    coach: User = Depends(require_coach),
    svc: StripeService = Depends(get_stripe_service),
):
    product, price = svc.create_product(
        name=request.name,
        amount=request.amount,
        description=request.description,
        currency=request.currency,
        interval=request.interval,
        interval_count=request.interval_count,
    )
    return {"success": True, "product": product, "price": price}


@router.post("/archive-stripe-product")
def archive_stripe_product(
    request: ArchiveProductRequest,
    coach: User = Depends(require_coach),
    svc: StripeService = Depends(get_stripe_service),
):
    product = svc.archive_product(request.product_id, archive=request.archive)
    return {"success": True, "product": product}


@router.get("/get-stripe-plans")
def get_stripe_plans(svc: StripeService = Depends(get_stripe_service)):
    return {"plans": svc.list_active_plans()}


@router.post("/webhook")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """
    Stripe webhook endpoint.

    Verifies signature and processes events idempotently.
    """
    sig = request.headers.get("stripe-signature")
    if not sig:
        raise HTTPException(status_code=400, detail="Missing Stripe-Signature header")

    payload = await request.body()
    try:
        svc = StripeService()
    except RuntimeError as e:
        raise ServiceUnavailableError(str(e))
    try:
        event = svc.construct_event(payload=payload, sig_header=sig)
    except RuntimeError as e:
        raise ServiceUnavailableError(str(e))
    except (ValueError, stripe.SignatureVerificationError):
        # Signature verification errors should return 400 so Stripe can retry appropriately.
        raise HTTPException(status_code=400, detail="Invalid signature")

    result = process_webhook_event(db, event=event)
    logger.info(f"Stripe webhook {result.get('event_id')}", extra={"extra_fields": result})
    return {"received": True, "result": result}
