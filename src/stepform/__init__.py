"""stepform: a multi-step form runtime.

Derives per-step validation contracts from declarative form configuration,
resolves conditional field visibility, evaluates cross-field rules, and
persists in-progress answers between steps.
"""

__version__ = "0.1.0"
