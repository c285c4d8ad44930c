"""Billing -- subscription plans, credit metering and usage logs."""
