"""Use-case level logic.

These modules implement deterministic cost report checks (validation rules 1-5)
over rows handed in by a producer (file parser, synthetic generator, API body).

They should be:
- deterministic
- unit-testable
- free of web/framework code
"""
