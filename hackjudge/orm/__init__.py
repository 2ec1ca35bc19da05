"""
hackjudge/orm/__init__.py
Importing this package registers every model on Base.metadata.
"""
from hackjudge.orm.base import Base, TimestampedModel
from hackjudge.orm.user import User, UserRole
from hackjudge.orm.event import Event, Team, TeamMember, Submission, JudgeAssignment
from hackjudge.orm.rubric import Rubric, Criterion, DEFAULT_MAX_SCORE
from hackjudge.orm.scoring import Score, RoundStatus, LeaderboardPosition
from hackjudge.orm.review import Review, ReviewFlag, ReviewerRole, FlagReason
from hackjudge.orm.feedback import FeedbackSummary

__all__ = [
    "Base", "TimestampedModel",
    "User", "UserRole",
    "Event", "Team", "TeamMember", "Submission", "JudgeAssignment",
    "Rubric", "Criterion", "DEFAULT_MAX_SCORE",
    "Score", "RoundStatus", "LeaderboardPosition",
    "Review", "ReviewFlag", "ReviewerRole", "FlagReason",
    "FeedbackSummary",
]
