"""Discord cogs exposing the member cache."""
