"""Subscription lifecycle email templates.

Each builder returns ``(subject, html, text)``. Amounts arrive in minor
units and are rendered with two decimals.
"""

from html import escape
from typing import Optional

PLAN_FEATURES = {
    "pro": ["Unlimited usage", "All premium features", "Priority support"],
    "team": ["Everything in Pro", "Up to 10 team members", "Shared team settings"],
    "enterprise": ["Everything in Team", "Unlimited team members", "SSO/SAML", "Dedicated support"],
}


def _display_name(email: str, name: Optional[str]) -> str:
    return name or email.split("@")[0]


def _format_amount(amount: Optional[int], currency: Optional[str]) -> Optional[str]:
    if amount is None or not currency:
        return None
    return f"{currency.upper()} {amount / 100:.2f}"


def _to_html(text: str) -> str:
    paragraphs = (escape(block).replace("\n", "<br>") for block in text.split("\n\n"))
    return "".join(f"<p>{p}</p>" for p in paragraphs)


def subscription_confirmation(
    email: str,
    name: Optional[str],
    plan: str,
    billing_cycle: str,
    app_url: str,
    product_name: str,
    amount: Optional[int] = None,
    currency: Optional[str] = None,
    gateway: Optional[str] = None,
) -> tuple[str, str, str]:
    """The 'your plan is active' email."""
    plan_name = plan.capitalize()
    period = "year" if billing_cycle == "yearly" else "month"
    details = [f"- Plan: {plan_name}", f"- Billing: {billing_cycle.capitalize()}"]
    amount_text = _format_amount(amount, currency)
    if amount_text:
        details.append(f"- Amount: {amount_text}/{period}")
    if gateway:
        details.append(f"- Payment method: {gateway.capitalize()}")
    features = "\n".join(f"- {f}" for f in PLAN_FEATURES.get(plan, PLAN_FEATURES["pro"]))

    text = (
        f"Hello {_display_name(email, name)},\n\n"
        f"Thank you for subscribing. Your {plan_name} plan is now active.\n\n"
        + "\n".join(details)
        + f"\n\nYour {plan_name} features:\n{features}\n\n"
        f"You can manage your subscription at: {app_url}/settings/subscription\n\n"
        f"The {product_name} Team"
    )
    subject = f"Your {plan_name} plan is now active - {product_name}"
    return subject, _to_html(text), text


def subscription_canceled(
    email: str,
    name: Optional[str],
    plan: str,
    app_url: str,
    product_name: str,
    immediate: bool = True,
    end_date: Optional[str] = None,
) -> tuple[str, str, str]:
    """The 'subscription canceled' or 'cancellation scheduled' email."""
    plan_name = plan.capitalize()
    greeting = f"Hello {_display_name(email, name)},\n\n"
    if immediate:
        body = (
            f"Your {plan_name} plan has been canceled and your account is now on the Free plan.\n\n"
            f"You can subscribe again at any time: {app_url}/pricing\n\n"
        )
        subject = f"Your subscription has been canceled - {product_name}"
    else:
        until = end_date or "the end of the current billing period"
        body = (
            f"Your {plan_name} plan is scheduled for cancellation. "
            f"You keep access to all {plan_name} features until {until}.\n\n"
            f"Changed your mind? Manage it at: {app_url}/settings/subscription\n\n"
        )
        subject = f"Your subscription cancellation is scheduled - {product_name}"
    text = greeting + body + f"The {product_name} Team"
    return subject, _to_html(text), text
