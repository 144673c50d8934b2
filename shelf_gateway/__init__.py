"""Shelf controller emulator speaking the vending MQTT topics."""
