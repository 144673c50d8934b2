"""Vending machine dispense service."""
