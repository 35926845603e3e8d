"""
Service modules for SOS Beacon
"""
