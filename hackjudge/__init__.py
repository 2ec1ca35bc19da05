"""
hackjudge
Judging, leaderboard and review-integrity core for hackathon events.
"""
__version__ = "1.0.0"
