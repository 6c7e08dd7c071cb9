"""
Subscription Reconciler

Keeps local subscription state consistent with Stripe. Webhook events may
arrive more than once and concurrently; the ``webhook_events`` ledger makes
each event id take effect at most once. The checkout confirmation path is
authenticated and re-verifies the session with Stripe before activating.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.config.settings import Settings
from app.domain.clock import from_unix
from app.domain.subscription import (
    CheckoutResponse,
    ConfirmPaymentRequest,
    PaymentHistoryItem,
    PaymentStatus,
    SubscriptionRecordResponse,
    SubscriptionStatus,
    SubscriptionStatusResponse,
    WebhookAck,
    WebhookEventType,
    coarse_status_for,
    has_active_access,
)
from app.infrastructure.db.models.subscription import SubscriptionModel
from app.infrastructure.db.models.user import User
from app.infrastructure.db.repositories.payment_history_repository import PaymentHistoryRepository
from app.infrastructure.db.repositories.subscription_repository import SubscriptionRepository
from app.infrastructure.db.repositories.user_repository import UserRepository
from app.infrastructure.db.repositories.webhook_event_repository import WebhookEventRepository
from app.infrastructure.exceptions import (
    ForbiddenError,
    NotFoundError,
    ValidationError,
    WebhookSignatureError,
)
from app.infrastructure.payments.stripe_service import StripeService


logger = logging.getLogger(__name__)

PAYMENT_HISTORY_LIMIT = 50

# Checkout session payment states that mean the money is collected (or not due)
SETTLED_PAYMENT_STATUSES = ("paid", "no_payment_required")


def _parse_user_id(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-numeric user id reference: {value!r}")
        return None


def _metadata_user_id(obj: dict[str, Any]) -> Optional[int]:
    return _parse_user_id((obj.get("metadata") or {}).get("user_id"))


def _period_bounds(subscription: dict[str, Any]) -> tuple[Optional[datetime], Optional[datetime]]:
    """
    Current billing period of a subscription object. Newer API versions
    moved the period onto the subscription items.
    """
    start = subscription.get("current_period_start")
    end = subscription.get("current_period_end")
    if end is None:
        items = (subscription.get("items") or {}).get("data") or []
        if items:
            start = items[0].get("current_period_start")
            end = items[0].get("current_period_end")
    return from_unix(start), from_unix(end)


def _invoice_subscription_id(invoice: dict[str, Any]) -> Optional[str]:
    subscription = invoice.get("subscription")
    if subscription is None:
        details = (invoice.get("parent") or {}).get("subscription_details") or {}
        subscription = details.get("subscription")
    if isinstance(subscription, dict):
        return subscription.get("id")
    return subscription


def _session_is_settled(session: dict[str, Any]) -> bool:
    return session.get("payment_status") in SETTLED_PAYMENT_STATUSES


def _session_invoice_id(session: dict[str, Any]) -> Optional[str]:
    invoice = session.get("invoice")
    if isinstance(invoice, dict):
        return invoice.get("id")
    return invoice or None


def _payment_key(invoice_id: Optional[str], fallback: str) -> str:
    """
    Payment history key. A paid invoice is recorded once, whether the
    confirmation path or the invoice webhook sees it first.
    """
    return f"invoice:{invoice_id}" if invoice_id else fallback


def _invoice_user_id(invoice: dict[str, Any]) -> Optional[int]:
    user_id = _metadata_user_id(invoice)
    if user_id is None:
        details = invoice.get("subscription_details") or (
            (invoice.get("parent") or {}).get("subscription_details") or {}
        )
        user_id = _metadata_user_id(details)
    return user_id


class SubscriptionReconciler:
    """
    Translates billing events into local subscription state.

    Args:
        session: Request-scoped session; one transaction per event
        stripe_service: Stripe collaborator
        settings: Application settings (redirect URLs)
    """

    def __init__(self, session: AsyncSession, stripe_service: StripeService, settings: Settings):
        self.session = session
        self.stripe = stripe_service
        self.settings = settings
        self.users = UserRepository(session)
        self.subscriptions = SubscriptionRepository(session)
        self.payments = PaymentHistoryRepository(session)
        self.ledger = WebhookEventRepository(session)

        self._handlers = {
            WebhookEventType.CHECKOUT_COMPLETED.value: self._on_checkout_completed,
            WebhookEventType.SUBSCRIPTION_CREATED.value: self._on_subscription_changed,
            WebhookEventType.SUBSCRIPTION_UPDATED.value: self._on_subscription_changed,
            WebhookEventType.SUBSCRIPTION_DELETED.value: self._on_subscription_deleted,
            WebhookEventType.INVOICE_PAYMENT_SUCCEEDED.value: self._on_invoice_paid,
            WebhookEventType.INVOICE_PAYMENT_FAILED.value: self._on_invoice_failed,
        }

    # =========================================================================
    # Webhook ingestion
    # =========================================================================

    async def process_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookAck:
        """
        Verify, deduplicate and apply one webhook delivery.

        Raises:
            WebhookSignatureError: bad signature; nothing is recorded
        """
        try:
            event = self.stripe.verify_webhook_signature(payload, signature)
        except WebhookSignatureError as e:
            logger.warning(f"Rejected webhook: {e.message}")
            raise

        return await self.apply_event(event)

    async def apply_event(self, event: dict[str, Any]) -> WebhookAck:
        """Apply an already verified event through the idempotency ledger."""
        event_id = event.get("id")
        event_type = event.get("type") or ""
        if not event_id:
            raise ValidationError("Webhook event has no id")

        existing = await self.ledger.get_by_id(event_id)
        if existing is not None and existing.processed:
            logger.info(f"Webhook {event_id} already processed, skipping")
            return WebhookAck(replay=True)

        await self.ledger.record(event_id, event_type, event)

        # Row lock: a concurrent duplicate waits here, then sees processed=true
        entry = await self.ledger.get_for_update(event_id)
        if entry.processed:
            logger.info(f"Webhook {event_id} processed concurrently, skipping")
            return WebhookAck(replay=True)

        handler = self._handlers.get(event_type)
        obj = (event.get("data") or {}).get("object") or {}
        if handler is None:
            logger.info(f"Unhandled webhook event type: {event_type}")
        else:
            logger.info(f"Processing webhook {event_id} ({event_type})")
            await handler(event_id, obj)

        await self.ledger.mark_processed(entry)
        return WebhookAck()

    async def _resolve_user(self, obj: dict[str, Any], user_id: Optional[int] = None) -> Optional[User]:
        """
        Owner of a billing object: explicit user id, then the customer id
        stored on a user or a subscription record.
        """
        if user_id is None:
            user_id = _metadata_user_id(obj) or _parse_user_id(obj.get("client_reference_id"))

        if user_id is not None:
            user = await self.users.get_by_id(user_id)
            if user is not None:
                return user
            logger.warning(f"Billing event references unknown user {user_id}")

        customer_id = obj.get("customer")
        if isinstance(customer_id, str) and customer_id:
            user = await self.users.get_by_stripe_customer_id(customer_id)
            if user is not None:
                return user
            record = await self.subscriptions.get_by_stripe_customer_id(customer_id)
            if record is not None:
                return await self.users.get_by_id(record.user_id)
        return None

    async def _apply_subscription(self, user: User, subscription: dict[str, Any]) -> SubscriptionModel:
        """Upsert the record and mirror the coarse status onto the user."""
        status = subscription.get("status") or SubscriptionStatus.INCOMPLETE.value
        period_start, period_end = _period_bounds(subscription)
        trial_end = from_unix(subscription.get("trial_end"))
        customer_id = subscription.get("customer")

        record = await self.subscriptions.upsert(
            user.id,
            subscription["id"],
            make_current=True,
            stripe_customer_id=customer_id,
            status=status,
            current_period_start=period_start,
            current_period_end=period_end,
            cancel_at_period_end=bool(subscription.get("cancel_at_period_end")),
            trial_start=from_unix(subscription.get("trial_start")),
            trial_end=trial_end,
        )

        ends_at = trial_end if status == SubscriptionStatus.TRIALING.value else period_end
        await self.users.set_subscription_state(
            user.id,
            coarse_status_for(status),
            ends_at=ends_at,
            stripe_customer_id=customer_id,
        )
        return record

    async def _on_subscription_changed(self, event_id: str, subscription: dict[str, Any]) -> None:
        user = await self._resolve_user(subscription)
        if user is None:
            logger.warning(f"Subscription {subscription.get('id')} has no resolvable owner")
            return
        await self._apply_subscription(user, subscription)

    async def _on_subscription_deleted(self, event_id: str, subscription: dict[str, Any]) -> None:
        user = await self._resolve_user(subscription)
        if user is None:
            logger.warning(f"Deleted subscription {subscription.get('id')} has no resolvable owner")
            return

        existing = await self.subscriptions.get_by_stripe_subscription_id(subscription["id"])
        if existing is not None:
            make_current = existing.is_current
        else:
            make_current = await self.subscriptions.get_current(user.id) is None

        await self.subscriptions.upsert(
            user.id,
            subscription["id"],
            make_current=make_current,
            stripe_customer_id=subscription.get("customer"),
            status=SubscriptionStatus.CANCELED.value,
        )
        # A superseded subscription ending does not cancel the current one
        if make_current:
            await self.users.set_subscription_state(user.id, SubscriptionStatus.CANCELED.value)

    async def _on_invoice_paid(self, event_id: str, invoice: dict[str, Any]) -> None:
        await self._record_invoice(event_id, invoice, PaymentStatus.SUCCEEDED)

    async def _on_invoice_failed(self, event_id: str, invoice: dict[str, Any]) -> None:
        user = await self._record_invoice(event_id, invoice, PaymentStatus.FAILED)
        if user is None:
            return

        logger.warning(f"Payment failed for user {user.id} (invoice {invoice.get('id')})")
        await self.users.set_subscription_state(user.id, SubscriptionStatus.PAST_DUE.value)

        subscription_id = _invoice_subscription_id(invoice)
        if subscription_id:
            record = await self.subscriptions.get_by_stripe_subscription_id(subscription_id)
            if record is not None:
                await self.subscriptions.upsert(
                    record.user_id,
                    subscription_id,
                    make_current=record.is_current,
                    status=SubscriptionStatus.PAST_DUE.value,
                )

    async def _record_invoice(
        self,
        event_id: str,
        invoice: dict[str, Any],
        status: PaymentStatus,
    ) -> Optional[User]:
        user = await self._resolve_user(invoice, _invoice_user_id(invoice))
        if user is None:
            subscription_id = _invoice_subscription_id(invoice)
            record = (
                await self.subscriptions.get_by_stripe_subscription_id(subscription_id)
                if subscription_id else None
            )
            if record is None:
                logger.warning(f"Invoice {invoice.get('id')} has no resolvable owner")
                return None
            user = await self.users.get_by_id(record.user_id)

        if status == PaymentStatus.SUCCEEDED:
            amount = invoice.get("amount_paid")
            source_event_id = _payment_key(invoice.get("id"), event_id)
        else:
            # Each failed attempt on the same invoice is its own row
            amount = invoice.get("amount_due")
            source_event_id = event_id
        await self.payments.append(
            user.id,
            source_event_id=source_event_id,
            status=status.value,
            amount_cents=int(amount or 0),
            currency=invoice.get("currency") or "brl",
            stripe_invoice_id=invoice.get("id"),
            description="Subscription payment",
        )
        return user

    async def _on_checkout_completed(self, event_id: str, session: dict[str, Any]) -> None:
        user = await self._resolve_user(session)
        if user is None:
            logger.warning(f"Checkout session {session.get('id')} has no resolvable owner")
            return
        if not _session_is_settled(session):
            logger.info(f"Checkout session {session.get('id')} completed without payment yet")
            return

        customer_id = session.get("customer")
        subscription = session.get("subscription")
        if isinstance(subscription, dict):
            await self._apply_subscription(user, subscription)
            return

        if subscription:
            await self.subscriptions.upsert(
                user.id,
                subscription,
                make_current=True,
                stripe_customer_id=customer_id,
                status=SubscriptionStatus.ACTIVE.value,
            )
        await self.users.set_subscription_state(
            user.id,
            coarse_status_for(SubscriptionStatus.ACTIVE.value),
            stripe_customer_id=customer_id,
        )

    # =========================================================================
    # Checkout confirmation (redirect fallback)
    # =========================================================================

    async def confirm_payment(self, user: User, request: ConfirmPaymentRequest) -> SubscriptionStatusResponse:
        """
        Activate the caller's subscription from a completed checkout session.

        The session is fetched from Stripe; the client-supplied status and
        email are never trusted.

        Raises:
            ForbiddenError: session belongs to another user
            ValidationError: session not paid
            NotFoundError: unknown session
        """
        session = await self.stripe.retrieve_checkout_session(request.session_id)

        owner_id = _parse_user_id(session.get("client_reference_id")) or _metadata_user_id(session)
        if owner_id != user.id:
            logger.warning(
                f"User {user.id} tried to confirm checkout session {request.session_id} "
                f"owned by {owner_id}"
            )
            raise ForbiddenError("Checkout session does not belong to this account")

        # A complete session may still be awaiting a delayed payment method
        if not _session_is_settled(session):
            raise ValidationError(
                "Checkout session is not paid",
                {"payment_status": session.get("payment_status"), "status": session.get("status")},
            )

        subscription = session.get("subscription")
        if isinstance(subscription, dict):
            await self._apply_subscription(user, subscription)
        else:
            await self.users.set_subscription_state(
                user.id,
                coarse_status_for(SubscriptionStatus.ACTIVE.value),
                stripe_customer_id=session.get("customer"),
            )

        invoice_id = _session_invoice_id(session)
        await self.payments.append(
            user.id,
            source_event_id=_payment_key(invoice_id, f"confirm:{request.session_id}"),
            status=PaymentStatus.SUCCEEDED.value,
            amount_cents=int(session.get("amount_total") or 0),
            currency=session.get("currency") or "brl",
            stripe_invoice_id=invoice_id,
            stripe_session_id=request.session_id,
            description="Checkout confirmation",
        )
        logger.info(f"Checkout session {request.session_id} confirmed for user {user.id}")

        await self.users.reload(user)
        return await self.get_status(user)

    # =========================================================================
    # Queries and account actions
    # =========================================================================

    async def get_status(self, user: User) -> SubscriptionStatusResponse:
        """Coarse status, current record and the derived access boolean."""
        record = await self.subscriptions.get_current(user.id)
        if record is not None:
            access = has_active_access(record.status, record.current_period_end, record.trial_end)
        else:
            # Confirmed without a provider subscription object
            access = has_active_access(user.subscription_status, user.subscription_ends_at)

        return SubscriptionStatusResponse(
            status=user.subscription_status,
            has_access=access,
            subscription_ends_at=user.subscription_ends_at,
            subscription=SubscriptionRecordResponse.model_validate(record) if record else None,
        )

    async def create_checkout(self, user: User) -> CheckoutResponse:
        """
        Raises:
            ValidationError: user already has access
            UpstreamBillingError: Stripe call failed
        """
        status = await self.get_status(user)
        if status.has_access:
            raise ValidationError("Subscription already active")

        base = self.settings.frontend_url
        session = await self.stripe.create_checkout_session(
            user_id=user.id,
            email=user.email,
            success_url=f"{base}/login?payment=success&session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{base}/payment?status=failed",
            customer_id=user.stripe_customer_id,
        )
        return CheckoutResponse(checkout_url=session["url"], session_id=session["id"])

    async def cancel(self, user: User) -> SubscriptionStatusResponse:
        """Cancel the current subscription at the end of its period."""
        record = await self.subscriptions.get_current(user.id)
        if record is None or not record.stripe_subscription_id:
            raise NotFoundError("No subscription to cancel", operation="cancel", table="subscriptions")

        await self.stripe.cancel_subscription(record.stripe_subscription_id, cancel_at_period_end=True)
        await self.subscriptions.set_cancel_at_period_end(record, True)
        logger.info(f"User {user.id} scheduled cancellation of {record.stripe_subscription_id}")
        return await self.get_status(user)

    async def payment_history(self, user: User) -> list[PaymentHistoryItem]:
        rows = await self.payments.list_for_user(user.id, limit=PAYMENT_HISTORY_LIMIT)
        return [PaymentHistoryItem.model_validate(row) for row in rows]

    async def has_access(self, user: User) -> bool:
        return (await self.get_status(user)).has_access
