"""
CCIS Adaptive Engine

- signals: behavioral signal normalization, scoring and level classification
- gaming: gaming risk detection over sessions and evidence batches
- progression: evidence ledger, state machine and the assessment aggregate
"""
