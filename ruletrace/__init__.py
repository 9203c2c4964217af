"""ruletrace - live traceability between specification prose and source code."""

__version__ = "0.1.0"
