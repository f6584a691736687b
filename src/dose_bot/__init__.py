"""Medication reminder bot for Discord DMs."""
