"""
Rulette - Session engine for the Rulette party game

Players collect rule cards, one player holds the referee card, and anyone
can call out a rule breaker. The engine provides:
- Session and player lifecycle
- Turn sequencing and referee rotation
- Callout adjudication with cooldowns and rate limits
- Clone, flip and swap card actions
"""

__version__ = "0.1.0"
