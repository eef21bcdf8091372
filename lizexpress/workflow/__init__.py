"""Verificatie-flow (stappen, evidence, engine)."""
