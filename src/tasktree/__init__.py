"""tasktree — hierarchical task-tree aggregation for project dashboards."""

__version__ = "1.2.0"
