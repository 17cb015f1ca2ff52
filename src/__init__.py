"""
Learning Path Scheduler
Orders a subject's concepts into a prerequisite-respecting study path
from a learner's mastery snapshot, and adapts it as mastery changes.
"""

__version__ = "0.1.0"
