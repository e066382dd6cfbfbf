"""Synthetic CMCD traffic for demonstrations and load checks."""
