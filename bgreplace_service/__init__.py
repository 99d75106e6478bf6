"""
Car background replacement microservice package.

Wraps the Gemini image-generation API behind a bounded-retry,
deadline-guarded client and serves it through a FastAPI application.
"""
