"""Tracks one team on HLTV and serves its data to a Telegram bot."""

__version__ = '1.0.0'
