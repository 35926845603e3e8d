"""
SOS Beacon - Personal SOS Alerts with Live Location

Raises and cancels SOS alerts against the alert backend and keeps the
backend informed of the user's position while an alert is active.
"""

__version__ = "1.0.0"
__author__ = "SOS Beacon Team"
