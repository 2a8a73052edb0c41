"""
HTTP demo surface.

Run with: uv run uvicorn api.main:app --reload
"""
