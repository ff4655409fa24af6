"""Database package."""
from .db import Database
from .models import Base, Agent, MetricSample

__all__ = ["Database", "Base", "Agent", "MetricSample"]
