"""
Core modules for promptgate.

Config sanitizing, cost calculation, quota gating and request
orchestration.
"""
