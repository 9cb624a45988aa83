"""Payment gateway client adapters."""
