"""Inventory service: fixed product catalog and availability checks."""
