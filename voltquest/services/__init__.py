"""Service layer for the gamification core."""
