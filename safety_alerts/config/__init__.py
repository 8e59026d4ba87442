"""Firebase and local document-store configuration."""
