"""Game domain services: dictionary, scoring, prompts, state and timers.

This package contains the round orchestration logic that HTTP routes and
socket handlers call into, keeping transport concerns separated from core
game mechanics.
"""
