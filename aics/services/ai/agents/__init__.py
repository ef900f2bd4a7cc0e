"""
Agents of the AI CS pipeline, one module per agent.

Modules are imported lazily by ``aics.services.ai.registry``.
"""
