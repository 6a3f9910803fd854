"""Escrowline integration clients.

Clients implement ``BaseIntegration`` and fall back to mock mode when no
real credentials are configured.
"""

from escrowline.integrations.base import BaseIntegration
from escrowline.integrations.sendgrid import EmailClient

__all__ = [
    "BaseIntegration",
    "EmailClient",
]
