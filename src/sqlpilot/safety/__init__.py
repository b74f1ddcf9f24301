"""
safety/__init__.py — SQLPilot Safety Module
"""

from sqlpilot.safety.policy_gate import PolicyGate
from sqlpilot.safety.rules import scan_statement

__all__ = [
    "PolicyGate",
    "scan_statement",
]
