"""
CCIS Competency Progression Engine

Assigns learners a Confidence-Competence Independence Scale level (1-4) per
competency from behavioral interaction evidence, tracks progression, detects
plateaus and flags gaming-risk evidence.
"""

__version__ = "1.0.0"
