from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
import logging
from typing import Any, Optional
from uuid import UUID

import stripe
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import BadRequestError, ForbiddenError, ValidationError
from core.timezone import local_day_start, local_today
from models import RecurringSubscription, StripeEvent, User

logger = logging.getLogger(__name__)

CANCELLABLE_STATUSES = ("active", "trialing", "past_due", "incomplete")


@dataclass(frozen=True)
class StripeConfig:
    secret_key: str
    webhook_secret: Optional[str]


def _get_stripe_config() -> StripeConfig:
    """
    Load Stripe config from environment via Settings.

    Fail closed: if the secret key is missing, billing endpoints should not proceed.
    """
    secret_key = getattr(settings, "STRIPE_SECRET_KEY", None)
    webhook_secret = getattr(settings, "STRIPE_WEBHOOK_SECRET", None)
    if not secret_key:
        raise RuntimeError("Stripe not configured (missing: STRIPE_SECRET_KEY)")
    return StripeConfig(
        secret_key=str(secret_key),
        webhook_secret=str(webhook_secret) if webhook_secret else None,
    )


def _field(obj: Any, name: str) -> Any:
    """Read a field from a Stripe object, a plain dict or an attribute object."""
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def _id_of(obj: Any) -> Optional[str]:
    """Expandable Stripe fields are either an id string or the expanded object."""
    if obj is None:
        return None
    if isinstance(obj, str):
        return obj or None
    value = _field(obj, "id")
    return str(value) if value else None


def _list_data(resp: Any) -> list:
    return list(_field(resp, "data") or [])


class StripeService:
    def __init__(self) -> None:
        cfg = _get_stripe_config()
        stripe.api_key = cfg.secret_key
        self.cfg = cfg

    def construct_event(self, *, payload: bytes, sig_header: str):
        if not self.cfg.webhook_secret:
            raise RuntimeError("Stripe webhook secret not configured")
        return stripe.Webhook.construct_event(
            payload=payload,
            sig_header=sig_header,
            secret=self.cfg.webhook_secret,
        )

    # --- customers and payment methods ---

    def get_or_create_customer(self, db: Session, *, user: User) -> str:
        if user.stripe_customer_id:
            return user.stripe_customer_id
        customer = stripe.Customer.create(
            email=user.email,
            name=user.name,
            metadata={"userId": str(user.id)},
        )
        user.stripe_customer_id = str(_field(customer, "id"))
        db.flush()
        logger.info(f"Created Stripe customer for user {user.id}")
        return user.stripe_customer_id

    def list_payment_methods(self, customer_id: str) -> list:
        return _list_data(stripe.PaymentMethod.list(customer=customer_id, type="card"))

    def default_payment_method_id(self, customer_id: str) -> Optional[str]:
        """The customer's invoice default, else the first card on file."""
        customer = stripe.Customer.retrieve(customer_id)
        default = _id_of(_field(_field(customer, "invoice_settings"), "default_payment_method"))
        if default:
            return default
        cards = self.list_payment_methods(customer_id)
        return _id_of(cards[0]) if cards else None

    def attach_payment_method(self, customer_id: str, payment_method_id: str, *, set_as_default: bool = False) -> None:
        stripe.PaymentMethod.attach(payment_method_id, customer=customer_id)
        if set_as_default:
            stripe.Customer.modify(customer_id, invoice_settings={"default_payment_method": payment_method_id})

    def detach_payment_method(self, payment_method_id: str) -> None:
        stripe.PaymentMethod.detach(payment_method_id)

    def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> Any:
        """
        Make the card the invoice default and retry the latest open invoice with it.

        A failed retry is logged; the new default still stands.
        """
        customer = stripe.Customer.modify(customer_id, invoice_settings={"default_payment_method": payment_method_id})
        open_invoice = self.current_open_invoice(customer_id)
        if open_invoice is not None:
            try:
                stripe.Invoice.pay(_id_of(open_invoice))
            except stripe.StripeError as e:
                logger.warning(f"Retrying open invoice for {customer_id} failed: {e}")
        return _field(customer, "invoice_settings")

    # --- subscriptions ---

    def _settle_first_invoice(self, subscription: Any, payment_method_id: str) -> Any:
        """
        Finalize and charge a new subscription's first invoice right away.

        Payment failures are logged and the subscription is returned as Stripe
        left it; `invoice.payment_failed` webhooks take it from there.
        """
        invoice_id = _id_of(_field(subscription, "latest_invoice"))
        if not invoice_id:
            return subscription
        subscription_id = _id_of(subscription)
        try:
            invoice = stripe.Invoice.retrieve(invoice_id)
            if _field(invoice, "status") == "draft":
                invoice = stripe.Invoice.finalize_invoice(invoice_id, auto_advance=True)
            if _field(invoice, "status") == "open":
                stripe.Invoice.pay(invoice_id, payment_method=payment_method_id, off_session=True)
        except stripe.StripeError as e:
            logger.warning(
                f"First invoice {invoice_id} for subscription {subscription_id} not paid: {e}",
                extra={"extra_fields": {"invoice_id": invoice_id, "subscription_id": subscription_id}},
            )
            return subscription
        return stripe.Subscription.retrieve(subscription_id)

    def _start_subscription(
        self,
        *,
        customer_id: str,
        price_id: str,
        payment_method_id: str,
        metadata: dict[str, str],
        billing_cycle_anchor: Optional[int] = None,
    ) -> Any:
        params: dict[str, Any] = {
            "customer": customer_id,
            "items": [{"price": price_id}],
            "payment_behavior": "default_incomplete",
            "payment_settings": {"save_default_payment_method": "on_subscription"},
            "expand": ["latest_invoice"],
            "proration_behavior": "none",
            "default_payment_method": payment_method_id,
            "metadata": metadata,
        }
        if billing_cycle_anchor:
            params["billing_cycle_anchor"] = billing_cycle_anchor
        return stripe.Subscription.create(**params)

    def create_client_subscription(
        self,
        db: Session,
        *,
        coach: User,
        client: User,
        price_id: str,
        tax_percentage: Optional[float] = None,
        start_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> tuple[Any, str]:
        """
        Subscribe a client to one of the coach's prices, charged to the card on file.

        A `start_date` after today anchors billing on that day; otherwise the
        first invoice is finalized and paid immediately. Tax is added to the
        first invoice as a separate item. Returns (subscription, message).
        """
        customer_id = self.get_or_create_customer(db, user=client)
        payment_method_id = self.default_payment_method_id(customer_id)
        if not payment_method_id:
            raise BadRequestError("Client has no payment method on file")

        price = stripe.Price.retrieve(price_id)
        base_amount = int(_field(price, "unit_amount") or 0)
        tax_amount = round(base_amount * (tax_percentage / 100)) if tax_percentage and tax_percentage > 0 else 0

        anchor = None
        if start_date is not None and start_date > local_today():
            anchor = int(local_day_start(start_date).timestamp())

        metadata = {"userId": str(client.id), "coachId": str(coach.id), "createdVia": "coach_subscription_creation"}
        if notes:
            metadata["notes"] = notes
        subscription = self._start_subscription(
            customer_id=customer_id,
            price_id=price_id,
            payment_method_id=payment_method_id,
            metadata=metadata,
            billing_cycle_anchor=anchor,
        )

        if tax_amount > 0:
            stripe.InvoiceItem.create(
                customer=customer_id,
                subscription=_id_of(subscription),
                amount=tax_amount,
                currency=_field(price, "currency") or "usd",
                description=f"Tax ({tax_percentage:g}%)",
            )

        if anchor is None:
            subscription = self._settle_first_invoice(subscription, payment_method_id)
            message = "Subscription created and payment processed"
            if _field(subscription, "status") != "active":
                message = "Subscription created; payment is pending"
        else:
            message = f"Subscription created; billing starts {start_date.isoformat()}"

        _upsert_subscription_mirror(db, subscription=subscription, user=client, coach_id=coach.id)
        logger.info(
            f"Created subscription for client {client.id}",
            extra={"extra_fields": {"subscription_id": _id_of(subscription), "price_id": price_id, "future_dated": anchor is not None}},
        )
        return subscription, message

    def cancel_client_subscriptions(self, db: Session, *, client: User) -> int:
        """
        Cancel every live subscription of the client. Returns how many were cancelled.

        The client keeps app access: all mirror rows are marked canceled and
        failed-payment state is cleared.
        """
        if not client.stripe_customer_id:
            raise BadRequestError("Client has no Stripe customer ID")

        subscriptions = _list_data(stripe.Subscription.list(customer=client.stripe_customer_id, status="all", limit=100))
        cancelled = 0
        for sub in subscriptions:
            sub_id = _id_of(sub)
            if _field(sub, "status") in CANCELLABLE_STATUSES:
                try:
                    stripe.Subscription.cancel(
                        sub_id,
                        cancellation_details={"comment": "Subscription cancelled by coach", "feedback": "other"},
                    )
                    cancelled += 1
                except stripe.StripeError as e:
                    logger.error(f"Error cancelling subscription {sub_id}: {e}")

        ids = [_id_of(s) for s in subscriptions]
        if ids:
            (
                db.query(RecurringSubscription)
                .filter(RecurringSubscription.stripe_subscription_id.in_(ids))
                .update({"status": "canceled"}, synchronize_session=False)
            )
        client.payment_failed_attempts = 0
        client.access_status = "active"
        db.flush()
        logger.info(f"Cancelled {cancelled} subscription(s) for client {client.id}")
        return cancelled

    def _client_subscription(self, client: User, subscription_id: str) -> Any:
        if not client.stripe_customer_id:
            raise BadRequestError("Client has no Stripe customer ID")
        subscription = stripe.Subscription.retrieve(subscription_id, expand=["latest_invoice"])
        if _id_of(_field(subscription, "customer")) != client.stripe_customer_id:
            raise ForbiddenError("Subscription does not belong to this client")
        return subscription

    def reactivate_subscription(self, db: Session, *, coach: User, client: User, subscription_id: str) -> Any:
        """Replace an `incomplete_expired` subscription with a new one on the same price."""
        old = self._client_subscription(client, subscription_id)
        if _field(old, "status") != "incomplete_expired":
            raise BadRequestError(f"Subscription is not expired. Current status: {_field(old, 'status')}")

        items = _list_data(_field(old, "items"))
        price_id = _id_of(_field(items[0], "price")) if items else None
        if not price_id:
            raise BadRequestError("Could not find price ID for subscription")

        payment_method_id = self.default_payment_method_id(client.stripe_customer_id)
        if not payment_method_id:
            raise BadRequestError("Client has no payment method on file")

        anchor = _field(old, "billing_cycle_anchor")
        future = bool(anchor) and int(anchor) > int(datetime.now(timezone.utc).timestamp())
        metadata = dict(_field(old, "metadata") or {})
        metadata.update({"userId": str(client.id), "createdVia": "subscription_reactivation", "reactivatedFrom": subscription_id})

        subscription = self._start_subscription(
            customer_id=client.stripe_customer_id,
            price_id=price_id,
            payment_method_id=payment_method_id,
            metadata=metadata,
            billing_cycle_anchor=int(anchor) if future else None,
        )
        if not future:
            subscription = self._settle_first_invoice(subscription, payment_method_id)
        _upsert_subscription_mirror(db, subscription=subscription, user=client, coach_id=coach.id)
        return subscription

    def retry_subscription_payment(self, *, client: User, subscription_id: str) -> tuple[Any, str]:
        subscription = self._client_subscription(client, subscription_id)
        invoice_id = _id_of(_field(subscription, "latest_invoice"))
        if not invoice_id:
            raise BadRequestError("No invoice found to retry. Ask the client to update payment method.")

        invoice = stripe.Invoice.retrieve(invoice_id)
        if _field(invoice, "status") == "paid":
            return subscription, "Invoice is already paid."
        if _field(invoice, "status") == "draft":
            invoice = stripe.Invoice.finalize_invoice(invoice_id, auto_advance=True)
        if _field(invoice, "status") != "open":
            raise BadRequestError(f"Invoice is not open. Current status: {_field(invoice, 'status')}")

        payment_method_id = _id_of(_field(subscription, "default_payment_method")) or self.default_payment_method_id(client.stripe_customer_id)
        if not payment_method_id:
            raise BadRequestError("Client has no payment method on file. Add a payment method to retry.")

        stripe.Invoice.pay(invoice_id, payment_method=payment_method_id, off_session=True)
        return stripe.Subscription.retrieve(subscription_id), "Payment retry initiated. Check subscription status for updates."

    def pay_latest_invoice(self, *, customer_id: str) -> str:
        invoice = self.current_open_invoice(customer_id)
        if invoice is None:
            raise BadRequestError("No open invoices to pay.")
        paid = stripe.Invoice.pay(_id_of(invoice))
        status = _field(paid, "status")
        if status != "paid":
            raise BadRequestError(f"Invoice payment status: {status}")
        return status

    # --- billing info ---

    def current_open_invoice(self, customer_id: str) -> Any:
        invoices = _list_data(stripe.Invoice.list(customer=customer_id, status="open", limit=1))
        return invoices[0] if invoices else None

    def subscription_info(self, customer_id: str) -> Optional[dict]:
        """Newest subscription of the customer, with its product name when it resolves."""
        subs = _list_data(stripe.Subscription.list(customer=customer_id, limit=1))
        if not subs:
            return None
        info = dict(subs[0])
        items = _list_data(_field(subs[0], "items"))
        product_id = _id_of(_field(_field(items[0], "price"), "product")) if items else None
        if product_id:
            try:
                info["productName"] = _field(stripe.Product.retrieve(product_id), "name")
            except stripe.StripeError as e:
                logger.warning(f"Could not load product {product_id}: {e}")
        return info

    def paid_cycle_count(self, customer_id: str) -> int:
        """Paid renewal invoices; first invoices and prorations do not count."""
        invoices = _list_data(stripe.Invoice.list(customer=customer_id, status="paid", limit=100))
        return sum(1 for inv in invoices if _field(inv, "billing_reason") == "subscription_cycle")

    def billing_overview(self, customer_id: str) -> dict:
        return {
            "subscription": self.subscription_info(customer_id),
            "billingHistory": _list_data(stripe.Invoice.list(customer=customer_id, limit=10)),
            "currentInvoice": self.current_open_invoice(customer_id),
        }

    # --- products ---

    def create_product(
        self,
        *,
        name: str,
        amount: Any,
        description: Optional[str] = None,
        currency: str = "usd",
        interval: str = "month",
        interval_count: int = 1,
    ) -> tuple[Any, Any]:
        """Create a product with one recurring price. `amount` is in major units (dollars)."""
        if not name or amount in (None, ""):
            raise ValidationError("Name and amount are required")
        try:
            amount_in_cents = round(float(amount) * 100)
        except (TypeError, ValueError):
            raise ValidationError("Amount must be a number", field="amount")
        if amount_in_cents <= 0:
            raise ValidationError("Amount must be greater than 0", field="amount")

        product = stripe.Product.create(name=name, description=description or None, active=True)
        price = stripe.Price.create(
            product=_id_of(product),
            unit_amount=amount_in_cents,
            currency=currency,
            recurring={"interval": interval, "interval_count": interval_count},
        )
        logger.info(f"Created Stripe product {_id_of(product)} at {amount_in_cents} {currency}/{interval}")
        return product, price

    def archive_product(self, product_id: str, *, archive: bool = True) -> Any:
        """Archive (or restore) a product together with all of its prices."""
        product = stripe.Product.modify(product_id, active=not archive)
        for price in _list_data(stripe.Price.list(product=product_id, limit=100)):
            stripe.Price.modify(_id_of(price), active=not archive)
        return product

    def list_products(self, db: Session, *, coach: User) -> list[dict]:
        """Products with their prices and the coach's clients actively subscribed to each."""
        clients = db.query(User).filter(User.coach_id == coach.id, User.role == "client").all()
        names_by_customer = {c.stripe_customer_id: c.name for c in clients if c.stripe_customer_id}

        products = _list_data(stripe.Product.list(limit=100))
        prices = _list_data(stripe.Price.list(limit=100))
        active = _list_data(stripe.Subscription.list(status="active", limit=100))

        clients_by_price: dict[str, list[str]] = {}
        for sub in active:
            client_name = names_by_customer.get(_id_of(_field(sub, "customer")))
            if not client_name:
                continue
            for item in _list_data(_field(sub, "items")):
                names = clients_by_price.setdefault(_id_of(_field(item, "price")), [])
                if client_name not in names:
                    names.append(client_name)

        result = []
        for product in products:
            product_id = _id_of(product)
            product_prices = [p for p in prices if _id_of(_field(p, "product")) == product_id]
            client_names: list[str] = []
            for p in product_prices:
                for n in clients_by_price.get(_id_of(p), []):
                    if n not in client_names:
                        client_names.append(n)
            result.append(
                {
                    "id": product_id,
                    "name": _field(product, "name"),
                    "description": _field(product, "description"),
                    "active": bool(_field(product, "active")),
                    "prices": [
                        {
                            "id": _id_of(p),
                            "amount": _field(p, "unit_amount"),
                            "currency": _field(p, "currency"),
                            "interval": _field(_field(p, "recurring"), "interval"),
                            "active": bool(_field(p, "active")),
                        }
                        for p in product_prices
                    ],
                    "activeClients": len(client_names),
                    "clientNames": client_names,
                }
            )
        return result

    def list_active_plans(self) -> list[dict]:
        prices = _list_data(stripe.Price.list(active=True, expand=["data.product"]))
        plans = []
        for price in prices:
            product = _field(price, "product")
            name = "Unknown Plan"
            if product is not None and not isinstance(product, str) and not _field(product, "deleted"):
                name = _field(product, "name") or name
            plans.append(
                {
                    "id": _id_of(price),
                    "name": name,
                    "amount": _field(price, "unit_amount"),
                    "currency": _field(price, "currency"),
                    "interval": _field(_field(price, "recurring"), "interval"),
                }
            )
        return plans


def _maybe_parse_period_end(ts: Any) -> Optional[datetime]:
    try:
        if ts is None:
            return None
        return datetime.fromtimestamp(int(ts), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def _extract_current_period_end_ts(obj: Any) -> Optional[int]:
    """
    Stripe API compatibility:
    - Older API versions: `subscription.current_period_end` (top-level)
    - Newer API versions: billing period fields live on `subscription.items.data[*].current_period_end`
    """
    ts = _field(obj, "current_period_end")
    if ts is not None:
        return int(ts)
    ends = [int(_field(it, "current_period_end")) for it in _list_data(_field(obj, "items")) if _field(it, "current_period_end") is not None]
    return max(ends) if ends else None


def _extract_cancel_at_ts(obj: Any) -> Optional[int]:
    v = _field(obj, "cancel_at")
    return int(v) if v is not None else None


def _derive_cancel_at_period_end(obj: Any, *, current_period_end_ts: Optional[int]) -> bool:
    if bool(_field(obj, "cancel_at_period_end")):
        return True
    # Newer Stripe API uses `cancel_at` timestamps for scheduled cancellation.
    cancel_at = _extract_cancel_at_ts(obj)
    if cancel_at is None:
        return False
    if current_period_end_ts is None:
        return True
    return int(cancel_at) == int(current_period_end_ts)


def _upsert_subscription_mirror(
    db: Session,
    *,
    subscription: Any,
    user: User,
    coach_id: Optional[UUID] = None,
) -> RecurringSubscription:
    subscription_id = _id_of(subscription)
    row = db.query(RecurringSubscription).filter(RecurringSubscription.stripe_subscription_id == subscription_id).first()
    if row is None:
        row = RecurringSubscription(stripe_subscription_id=subscription_id, user_id=user.id)
        db.add(row)

    current_period_end_ts = _extract_current_period_end_ts(subscription)
    if current_period_end_ts is None:
        # Some objects omit period fields but include the cancellation timestamp.
        current_period_end_ts = _extract_cancel_at_ts(subscription)

    row.user_id = user.id
    row.coach_id = coach_id or row.coach_id or user.coach_id
    row.stripe_customer_id = _id_of(_field(subscription, "customer")) or row.stripe_customer_id
    row.status = _field(subscription, "status") or row.status
    row.current_period_end = _maybe_parse_period_end(current_period_end_ts)
    row.cancel_at_period_end = _derive_cancel_at_period_end(subscription, current_period_end_ts=current_period_end_ts)

    # Best-effort price id from first subscription item.
    items = _list_data(_field(subscription, "items"))
    price_id = _id_of(_field(items[0], "price")) if items else None
    if price_id:
        row.stripe_price_id = price_id
    db.flush()
    return row


def _find_user_by_customer_id(db: Session, customer_id: Optional[str]) -> Optional[User]:
    if not customer_id:
        return None
    return db.query(User).filter(User.stripe_customer_id == customer_id).first()


def _find_user_by_reference(db: Session, ref: Optional[str]) -> Optional[User]:
    if not ref:
        return None
    try:
        return db.get(User, UUID(str(ref)))
    except ValueError:
        return None


def process_webhook_event(db: Session, *, event: Any) -> dict[str, Any]:
    """
    Idempotently process a Stripe webhook event: keep the subscription mirror
    current and track failed payments on the paying user.
    """
    event_id = str(_field(event, "id") or "")
    event_type = str(_field(event, "type") or "")
    stripe_created = _field(event, "created")

    if not event_id:
        return {"processed": False, "reason": "missing_event_id"}

    # Idempotency: if event already processed, do nothing.
    if db.get(StripeEvent, event_id) is not None:
        return {"processed": False, "idempotent": True, "event_id": event_id}
    db.add(StripeEvent(event_id=event_id, event_type=event_type or "unknown", stripe_created=int(stripe_created) if stripe_created else None))
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        return {"processed": False, "idempotent": True, "event_id": event_id}

    obj = _field(_field(event, "data"), "object")
    customer_id = _id_of(_field(obj, "customer"))

    if event_type in ("customer.subscription.created", "customer.subscription.updated", "customer.subscription.deleted"):
        subscription_id = _id_of(obj)
        user = _find_user_by_customer_id(db, customer_id)
        if user is None:
            user = _find_user_by_reference(db, _field(_field(obj, "metadata"), "userId"))
        if user is None and subscription_id:
            # Fallback match: mirror row by subscription id, then its user.
            existing = db.query(RecurringSubscription).filter(RecurringSubscription.stripe_subscription_id == subscription_id).first()
            if existing:
                user = db.get(User, existing.user_id)

        if user is None:
            logger.warning(f"Stripe event {event_id} ({event_type}) matched no user")
            db.commit()
            return {"processed": True, "event_id": event_id, "event_type": event_type, "matched_user": False}

        if customer_id and not user.stripe_customer_id:
            user.stripe_customer_id = customer_id
        coach_ref = _find_user_by_reference(db, _field(_field(obj, "metadata"), "coachId"))
        row = _upsert_subscription_mirror(db, subscription=obj, user=user, coach_id=coach_ref.id if coach_ref else None)
        db.commit()
        return {"processed": True, "event_id": event_id, "event_type": event_type, "user_id": str(user.id), "status": row.status}

    if event_type in ("invoice.payment_failed", "invoice.paid"):
        user = _find_user_by_customer_id(db, customer_id)
        if user is None:
            logger.warning(f"Stripe event {event_id} ({event_type}) for unknown customer {customer_id}")
            db.commit()
            return {"processed": True, "event_id": event_id, "event_type": event_type, "matched_user": False}

        if event_type == "invoice.payment_failed":
            user.payment_failed_attempts = (user.payment_failed_attempts or 0) + 1
            if user.payment_failed_attempts >= settings.PAYMENT_FAILURE_LOCKOUT_ATTEMPTS:
                user.access_status = "payment_required"
            logger.info(
                f"Payment failed for user {user.id}",
                extra={"extra_fields": {"attempts": user.payment_failed_attempts, "access_status": user.access_status}},
            )
        else:
            user.payment_failed_attempts = 0
            user.access_status = "active"
        db.commit()
        return {
            "processed": True,
            "event_id": event_id,
            "event_type": event_type,
            "user_id": str(user.id),
            "payment_failed_attempts": user.payment_failed_attempts,
            "access_status": user.access_status,
        }

    # Unknown/unhandled event: accept but no-op (still idempotently recorded).
    db.commit()
    return {"processed": True, "event_id": event_id, "event_type": event_type, "handled": False}
