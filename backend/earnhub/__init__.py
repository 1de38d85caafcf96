"""EarnHub backend: earning, wallet and game settlement API."""
