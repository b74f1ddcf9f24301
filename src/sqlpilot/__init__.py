"""
SQLPilot — natural-language questions answered against a relational database
by an agent loop that proposes, vets and executes one action at a time.

Entry point:
    from sqlpilot.agent.orchestrator import Orchestrator
"""

__version__ = "0.1.0"
