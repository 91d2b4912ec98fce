"""
Integrations - External collaborators of the game engine.

- PersistenceMirror: outbound copy of session state (remote store)
- RuleEngine: ledger of rules currently in effect
- MirrorSync: turns ActionResult effects into mirror writes

In-memory implementations are provided for tests and local play.
"""

from .persistence import PersistenceMirror, InMemoryMirror, MirrorCall
from .rule_engine import (
    RuleEngine,
    InMemoryRuleEngine,
    ActiveRule,
    RuleScope,
    RuleState,
    RemovalCondition,
)
from .sync import MirrorSync

__all__ = [
    "PersistenceMirror",
    "InMemoryMirror",
    "MirrorCall",
    "RuleEngine",
    "InMemoryRuleEngine",
    "ActiveRule",
    "RuleScope",
    "RuleState",
    "RemovalCondition",
    "MirrorSync",
]
