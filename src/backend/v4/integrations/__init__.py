"""Record producers for the cost report engine.

Keep these modules small and testable:
- No FastAPI request/response objects
- Produce CostRow sequences; never evaluate rules
"""
