"""Knowledge lifecycle engine.

Decides which question/answer pairs are worth keeping, ages them through
retention tiers, and keeps a similarity store and a structured store in
agreement while keeping personal data out of both.
"""

__version__ = "0.1.0"
