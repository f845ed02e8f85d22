"""Booking and payment reconciliation core for the portfolio site."""
