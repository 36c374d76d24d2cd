"""steward — guarded ReAct agents with budgets, tools and signals."""

__version__ = "0.1.0"
