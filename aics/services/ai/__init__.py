"""
AI customer-support pipeline.

Translation, sentiment, classification, concurrent specialist agents and QA
review, coordinated by ``orchestration.Orchestrator``. Agents only request
side effects; ``actions.ActionExecutor`` performs them.
"""
