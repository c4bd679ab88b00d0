"""
Email Provider Package
"""
from app.infrastructure.connectors.email.smtp import SentEmail, SMTPConfigError, SMTPConnector

__all__ = ["SentEmail", "SMTPConfigError", "SMTPConnector"]
