"""Gmail access for rescheduling emails."""
