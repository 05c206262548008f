"""Forecast workflow engine.

Provides the staged workflow behind an interactive aftershock forecasting
tool:
- a stage controller that gates actions and discards stale results
- parameter snapshots with dirty-field write-back
- pipelines of background and owner-thread steps
"""

__version__ = "0.1.0"

from forecast_workflow.config import WorkflowSettings
from forecast_workflow.session import Action, Session

__all__ = ["__version__", "Action", "Session", "WorkflowSettings"]
