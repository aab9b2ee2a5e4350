"""API route handlers."""

from src.api.routes import email_drafts as email_drafts
