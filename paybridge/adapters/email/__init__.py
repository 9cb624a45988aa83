"""Email notifier adapters."""

from paybridge.adapters.email.fake import FakeEmailNotifier
from paybridge.adapters.email.null import NullEmailNotifier
from paybridge.adapters.email.resend import ResendEmailNotifier

__all__ = ["FakeEmailNotifier", "NullEmailNotifier", "ResendEmailNotifier"]
