"""Viva Wallet Smart Checkout integration: token cache, payment orders, webhook settlement."""
