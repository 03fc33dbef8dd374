"""Unit tests for the taxonomy API route modules.

Structure:
    tests/unit/web/
    ├── test_auth.py                 # Credential check
    ├── test_dependencies.py         # Audit context dependency
    ├── test_routes_auth.py          # Login route
    └── test_routes_occupations.py   # Occupation routes

Testing pattern:
    - Use FastAPI's TestClient for route testing
    - Mock database sessions and store calls
    - Test request/response validation and error mapping
"""
