"""Capability servers: notion (use_notion) and google (use_google_calendar, use_gmail)."""
