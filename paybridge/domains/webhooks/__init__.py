"""Webhooks domain: idempotency ledger, processor and maintenance.

Use Inject(WebhookProcessorProtocol) in FastAPI endpoints for the singleton
processor.
"""
