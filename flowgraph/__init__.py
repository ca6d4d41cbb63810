"""FlowGraph: validate, schedule and run trigger/action workflow graphs."""

__version__ = "1.0.0"
