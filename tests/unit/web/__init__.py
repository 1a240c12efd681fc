"""Unit tests for wasteplan web route modules.

Testing pattern:
    - Use FastAPI's TestClient for route testing
    - Replace the ScheduleService through dependency overrides
    - Test request/response validation
    - Test error handling
"""
