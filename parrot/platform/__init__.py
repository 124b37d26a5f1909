"""Platform clients — raw HTTP access to chat services."""
