"""Delivery service: turns shipment status commands into delivery.updates events."""
