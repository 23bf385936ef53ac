"""Presentation layer: tray widget, text rendering and the Qt/asyncio bridge."""
