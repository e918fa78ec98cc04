"""
member_atlas.api — FastAPI REST endpoints for the member dashboard.

Modules:
    endpoints — create_app() factory with all route definitions.

Usage:
    from member_atlas.api.endpoints import create_app
    app = create_app()
    # Run with: uvicorn member_atlas.api.endpoints:create_app --factory
"""
